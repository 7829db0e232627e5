from urllib.parse import quote

from shared.clients.kv.KVClientInterface import KVClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class KVClientCloudflare(KVClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._account_id = self.get_config_val("ACCOUNT_ID", default=None, val_type="string")
        self._api_token = self.get_config_val("API_TOKEN", default=None, val_type="string")
        self._namespace_id = self.get_config_val("NAMESPACE_ID", default=None, val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Cloudflare"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="ACCOUNT_ID", val_type="string", default=None),
            EnvConfig(env_key="API_TOKEN", val_type="string", default=None),
            EnvConfig(env_key="NAMESPACE_ID", val_type="string", default=None),
        ]

    ################ AUTH ##################
    async def _get_auth_header(self) -> dict:
        return {"Authorization": f"Bearer {self._api_token}"}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return f"https://api.cloudflare.com/client/v4/accounts/{self._account_id}/storage/kv/namespaces/{self._namespace_id}"

    def _get_endpoint_healthcheck(self) -> str:
        return "/keys?limit=10"

    def _get_endpoint_value(self, key: str) -> str:
        # keys contain ":" which must be percent-encoded in the path
        return f"/values/{quote(key, safe='')}"
