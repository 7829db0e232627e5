import asyncio
import os
from pathlib import Path
import tempfile
from urllib.parse import quote

from shared.clients.kv.KVClientInterface import KVClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.helper.errors import ConfigurationError
from shared.models.config import EnvConfig


class KVClientFile(KVClientInterface):
    """Key-value store keeping one file per key in a local directory.

    Writes go to a temporary file that atomically replaces the target.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._dir = Path(self.get_config_val("PATH", default="./kv", val_type="string"))

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "File"

    def is_booted(self) -> bool:
        return self._dir.is_dir()

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [EnvConfig(env_key="PATH", val_type="string", default="./kv")]

    ################ AUTH ##################
    async def _get_auth_header(self) -> dict:
        return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return str(self._dir)

    def _get_endpoint_healthcheck(self) -> str:
        return ""

    def _get_endpoint_value(self, key: str) -> str:
        return quote(key, safe="") + ".json"

    def _path_for(self, key: str) -> Path:
        if not self.is_booted():
            raise ConfigurationError("File KV directory not initialised. Call boot() before making requests.")
        return self._dir / self._get_endpoint_value(key)

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def boot(self) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        self.logging.debug("File KV store at %s", self._dir)

    async def close(self) -> None:
        return None

    async def do_healthcheck(self) -> bool:
        return self.is_booted() and os.access(self._dir, os.W_OK)

    async def do_get_text(self, key: str) -> str | None:
        path = self._path_for(key)
        try:
            return await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError:
            return None

    async def do_put_text(self, key: str, value: str) -> None:
        path = self._path_for(key)

        def _write() -> None:
            fd, tmp_name = tempfile.mkstemp(dir=self._dir, prefix=".tmp-")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(value)
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise

        await asyncio.to_thread(_write)

    async def do_delete(self, key: str) -> None:
        path = self._path_for(key)
        await asyncio.to_thread(path.unlink, missing_ok=True)
