"""Read-only credential stores for bot tokens and account metadata.

The bot manager consumes a store once at startup through ``list_bots()``.
A store that cannot be read raises StoreUnavailableError, which is the only
condition that aborts initialization.

YAML file layout::

    bots:
      - bot_id: support
        token: 4453b6ac1234...
        name: Support Bot
        avatar: https://example.com/avatar.png
        metadata:
          team: care
"""

import asyncio
import logging
import os
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Protocol

import yaml
from pydantic import ValidationError as PydanticValidationError

from viber_relay.exceptions import StoreUnavailableError
from viber_relay.models import BotCredentials

logger = logging.getLogger(__name__)


class CredentialStore(Protocol):
    """Source of the bots this process manages."""

    async def list_bots(self) -> list[BotCredentials]:
        """Return every known bot.

        Raises:
            StoreUnavailableError: If the store cannot be read.
        """
        ...


def _describe(error: PydanticValidationError) -> str:
    # Input values are left out so a token never reaches the message
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
        for err in error.errors(include_input=False, include_url=False)
    )


class InMemoryCredentialStore:
    """Store backed by a fixed list, for embedding and tests."""

    def __init__(self, bots: Iterable[BotCredentials] = ()) -> None:
        self._bots = list(bots)

    async def list_bots(self) -> list[BotCredentials]:
        return list(self._bots)


class FileCredentialStore:
    """Store backed by a YAML file (see module docstring for the layout)."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    async def list_bots(self) -> list[BotCredentials]:
        return await asyncio.to_thread(self.load)

    def load(self) -> list[BotCredentials]:
        """Read and validate the file synchronously.

        Returns:
            Credentials in file order

        Raises:
            StoreUnavailableError: If the file is missing, unreadable, not
                valid YAML, or any entry fails validation.
        """
        try:
            with open(self.path) as f:
                raw = yaml.safe_load(f)
        except OSError as e:
            raise StoreUnavailableError(f"Cannot read credentials file {self.path}: {e}") from e
        except yaml.YAMLError as e:
            raise StoreUnavailableError(f"Invalid YAML in {self.path}: {e}") from e

        if raw is None:
            logger.warning("Credentials file %s is empty", self.path)
            return []
        if not isinstance(raw, dict) or not isinstance(raw.get("bots", []), list):
            raise StoreUnavailableError(
                f"{self.path} must be a mapping with a 'bots' list"
            )

        bots: list[BotCredentials] = []
        seen: set[str] = set()
        for index, entry in enumerate(raw.get("bots", [])):
            try:
                credentials = BotCredentials.model_validate(entry)
            except PydanticValidationError as e:
                raise StoreUnavailableError(
                    f"Invalid bot entry #{index} in {self.path}: {_describe(e)}"
                ) from e
            if credentials.bot_id in seen:
                raise StoreUnavailableError(
                    f"Duplicate bot_id {credentials.bot_id!r} in {self.path}"
                )
            seen.add(credentials.bot_id)
            bots.append(credentials)

        logger.info("Loaded %d bot(s) from %s", len(bots), self.path)
        return bots


class EnvCredentialStore:
    """Single-bot store read from environment variables.

    Variables:
        VIBER_AUTH_TOKEN: Auth token (required)
        VIBER_BOT_ID: Local bot id (default: "default")
        VIBER_BOT_NAME: Sender name
        VIBER_BOT_AVATAR: Sender avatar URL
    """

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = environ if environ is not None else os.environ

    async def list_bots(self) -> list[BotCredentials]:
        token = self._environ.get("VIBER_AUTH_TOKEN")
        if not token:
            raise StoreUnavailableError("VIBER_AUTH_TOKEN is not set")

        try:
            credentials = BotCredentials(
                bot_id=self._environ.get("VIBER_BOT_ID", "default"),
                token=token,
                name=self._environ.get("VIBER_BOT_NAME"),
                avatar=self._environ.get("VIBER_BOT_AVATAR"),
            )
        except PydanticValidationError as e:
            raise StoreUnavailableError(
                f"Invalid bot settings in environment: {_describe(e)}"
            ) from e
        return [credentials]
