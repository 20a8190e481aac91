"""SigningAgent protocol - the user-controlled signing capability."""

from __future__ import annotations

from typing import Callable, Protocol

from stellar_sdk import Keypair

# Called with ("account", new_address | None) or ("network", new_network_id)
ChangeCallback = Callable[[str, "str | None"], None]


class SigningAgent(Protocol):
    """Opaque signing capability injected into the wallet session.

    Any wallet protocol that can expose this capability set will do; the
    session never touches key material except through ``authorize``.
    """

    async def connect(self) -> str:
        """Ask the agent for access. Returns the account address.

        Raises OperationError(USER_REJECTED) when access is declined and
        OperationError(INVALID_INPUT) when no agent is present.
        """
        ...

    async def disconnect(self) -> None:
        ...

    async def current_account(self) -> str | None:
        ...

    async def network_id(self) -> str:
        """Network passphrase the agent is currently signing for."""
        ...

    async def switch_network(self, network_id: str) -> bool:
        ...

    async def authorize(self, purpose: str) -> Keypair:
        """Hand out a signer for one ledger call.

        This is an unbounded suspension point: it may wait on out-of-process
        user interaction. Raises OperationError(USER_REJECTED) on decline.
        """
        ...

    async def sign_message(self, message: str) -> str:
        """Sign an arbitrary message. Returns base64 signature."""
        ...

    def on_change(self, callback: ChangeCallback) -> Callable[[], None]:
        """Register a change listener. Returns an unregister function."""
        ...
