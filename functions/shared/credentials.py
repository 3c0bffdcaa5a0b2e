"""
Per-user API key records stored in Azure Blob Storage.

One JSON blob per user ({user_id}.json) holding fireflies_key, openai_key
and gemini_key, as written by the settings page.
"""

import os
import json
import logging
from typing import Optional

from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.storage.blob.aio import ContainerClient

from .session import SessionContext

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_CONTAINER = "user-settings"


class CredentialStore:
    """
    Reads stored credentials and builds a SessionContext.

    Usage:
        store = CredentialStore()
        session = await store.load_session(identity.user_id, identity.email)
    """

    def __init__(
        self,
        connection_string: Optional[str] = None,
        container_name: Optional[str] = None,
    ):
        self.connection_string = connection_string or os.environ.get("AZURE_STORAGE_CONNECTION_STRING")
        self.container_name = container_name or os.environ.get(
            "SETTINGS_CONTAINER_NAME", DEFAULT_SETTINGS_CONTAINER
        )

        if not self.connection_string:
            logger.warning(
                "AZURE_STORAGE_CONNECTION_STRING not configured. "
                "No stored API keys will be found."
            )

    def _get_container(self) -> Optional[ContainerClient]:
        if not self.connection_string:
            return None
        return ContainerClient.from_connection_string(
            conn_str=self.connection_string,
            container_name=self.container_name,
        )

    async def get_settings(self, user_id: str) -> dict:
        """
        Fetch the raw settings record for a user.

        Returns:
            Settings dict, or an empty dict if storage is unavailable or the
            user has not saved any keys.
        """
        container = self._get_container()
        if container is None:
            return {}

        try:
            async with container:
                blob_client = container.get_blob_client(f"{user_id}.json")
                downloader = await blob_client.download_blob()
                data = await downloader.readall()
            return json.loads(data.decode("utf-8"))

        except ResourceNotFoundError:
            return {}

        except AzureError as e:
            logger.warning(f"Failed to read settings for user {user_id[:8]}...: {type(e).__name__}: {e}")
            return {}

        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse settings JSON: {e}")
            return {}

    async def load_session(self, user_id: str, email: Optional[str] = None) -> SessionContext:
        settings = await self.get_settings(user_id)
        return SessionContext.from_settings(user_id, settings, email=email)
