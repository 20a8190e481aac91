"""Keypair-backed signing agent.

The agent holds a Stellar secret seed and hands out the ``Keypair`` for one
ledger call at a time. An optional confirmation callback stands in for the
out-of-process approval step a browser wallet would show; the CLI wires it to
``click.confirm``.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import Awaitable, Callable, Union

from stellar_sdk import Keypair
from stellar_sdk.exceptions import Ed25519SecretSeedInvalidError

from voxelcraft.interfaces.signer import ChangeCallback
from voxelcraft.models.errors import invalid_input, user_rejected

log = logging.getLogger(__name__)

# Receives the purpose string, returns True to approve
ConfirmCallback = Callable[[str], Union[bool, Awaitable[bool]]]


class KeypairSigningAgent:
    """Signs with a local keypair, optionally after asking for approval."""

    def __init__(
        self,
        secret: str,
        network_passphrase: str,
        confirm: ConfirmCallback | None = None,
    ) -> None:
        self._secret = secret
        self._network_passphrase = network_passphrase
        self._confirm = confirm
        self._keypair: Keypair | None = None
        self._listeners: list[ChangeCallback] = []

    async def connect(self) -> str:
        if not self._secret:
            raise invalid_input("no signing agent present (set VOXELCRAFT_SECRET)")
        try:
            keypair = Keypair.from_secret(self._secret)
        except (Ed25519SecretSeedInvalidError, ValueError) as exc:
            raise invalid_input(f"invalid secret seed: {exc}") from None
        if not await self._approve("connect"):
            raise user_rejected("connection request declined")
        self._keypair = keypair
        log.info("Signing agent connected as %s", keypair.public_key[:16])
        return keypair.public_key

    async def disconnect(self) -> None:
        self._keypair = None

    async def current_account(self) -> str | None:
        return self._keypair.public_key if self._keypair else None

    async def network_id(self) -> str:
        return self._network_passphrase

    async def switch_network(self, network_id: str) -> bool:
        if network_id == self._network_passphrase:
            return True
        self._network_passphrase = network_id
        log.info("Signing agent switched network")
        self._notify("network", network_id)
        return True

    async def authorize(self, purpose: str) -> Keypair:
        if self._keypair is None:
            raise invalid_input("signing agent is not connected")
        if not await self._approve(purpose):
            raise user_rejected(f"signature request declined: {purpose}")
        return self._keypair

    async def sign_message(self, message: str) -> str:
        keypair = await self.authorize(f"sign message ({len(message)} chars)")
        signature = keypair.sign(message.encode("utf-8"))
        return base64.b64encode(signature).decode("ascii")

    def on_change(self, callback: ChangeCallback) -> Callable[[], None]:
        self._listeners.append(callback)

        def _remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _remove

    def change_account(self, secret: str) -> None:
        """Swap the held key, as a wallet does when the user picks another account."""
        self._secret = secret
        self._keypair = Keypair.from_secret(secret) if secret else None
        self._notify("account", self._keypair.public_key if self._keypair else None)

    def _notify(self, what: str, value: str | None) -> None:
        for callback in list(self._listeners):
            try:
                callback(what, value)
            except Exception as exc:
                log.error("Signing agent change listener failed: %s", exc)

    async def _approve(self, purpose: str) -> bool:
        if self._confirm is None:
            return True
        result = self._confirm(purpose)
        if asyncio.iscoroutine(result) or isinstance(result, asyncio.Future):
            result = await result
        return bool(result)
