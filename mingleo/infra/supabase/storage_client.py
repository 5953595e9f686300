# =============================================================================
# File: mingleo/infra/supabase/storage_client.py
# Description: ObjectStoragePort over the Supabase storage HTTP API
# =============================================================================

from typing import Sequence

from mingleo.config.logging_config import get_logger
from mingleo.infra.supabase.base_client import SupabaseBaseClient

log = get_logger("mingleo.infra.supabase.storage")


class SupabaseStorageClient(SupabaseBaseClient):
    """Bucket object upload, public URLs and removal"""

    async def upload(
            self,
            bucket: str,
            key: str,
            data: bytes,
            content_type: str,
            upsert: bool = False,
    ) -> str:
        url = f"{self.config.storage_url}/object/{bucket}/{key}"
        headers = {
            "Content-Type": content_type,
            "x-upsert": "true" if upsert else "false",
        }
        await self._request("POST", url, f"upload {bucket}/{key}", content=data, headers=headers)

        log.info(f"Uploaded {len(data)} bytes to {bucket}/{key}")
        return key

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.config.storage_url}/object/public/{bucket}/{path}"

    async def remove(self, bucket: str, keys: Sequence[str]) -> None:
        keys = [key for key in keys if key]
        if not keys:
            return
        url = f"{self.config.storage_url}/object/{bucket}"
        await self._request("DELETE", url, f"remove from {bucket}", json={"prefixes": keys})
        log.info(f"Removed {len(keys)} objects from {bucket}")
