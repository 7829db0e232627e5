import asyncio
import json

from google.auth.transport.requests import Request
from google.oauth2 import service_account

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.helper.errors import ConfigurationError
from shared.models.config import EnvConfig

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


class EmbedClientVertex(EmbedClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._project = self.get_config_val("PROJECT", default=None, val_type="string")
        self._region = self.get_config_val("REGION", default="us-central1", val_type="string")
        self._model = self.get_config_val("MODEL", default="multimodalembedding@001", val_type="string")
        self._credentials = self._load_credentials(self.get_config_val("SA_JSON", default=None, val_type="string"))

    def _load_credentials(self, sa_json: str) -> service_account.Credentials:
        try:
            info = json.loads(sa_json)
        except ValueError as e:
            raise ConfigurationError(f"EMBED_VERTEX_SA_JSON is not valid JSON: {e}")
        try:
            return service_account.Credentials.from_service_account_info(info, scopes=[CLOUD_PLATFORM_SCOPE])
        except (ValueError, KeyError) as e:
            raise ConfigurationError(f"EMBED_VERTEX_SA_JSON is not a usable service account key: {e}")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Vertex"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="PROJECT", val_type="string", default=None),
            EnvConfig(env_key="REGION", val_type="string", default="us-central1"),
            EnvConfig(env_key="MODEL", val_type="string", default="multimodalembedding@001"),
            EnvConfig(env_key="SA_JSON", val_type="string", default=None),
        ]

    ################ AUTH ##################
    async def _get_auth_header(self) -> dict:
        if not self._credentials.valid:
            # google-auth refresh is blocking
            await asyncio.to_thread(self._credentials.refresh, Request())
        return {"Authorization": f"Bearer {self._credentials.token}"}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return f"https://{self._region}-aiplatform.googleapis.com"

    def _get_endpoint_healthcheck(self) -> str:
        return f"/v1/projects/{self._project}/locations/{self._region}/publishers/google/models/{self._model}"

    def get_endpoint_embedding(self) -> str:
        return f"/v1/projects/{self._project}/locations/{self._region}/publishers/google/models/{self._model}:predict"

    ################ PAYLOAD BUILDER ##################
    def get_image_payload(self, image_b64: str) -> dict:
        return {"instances": [{"image": {"bytesBase64Encoded": image_b64}}], "parameters": {}}

    def get_text_payload(self, text: str) -> dict:
        return {"instances": [{"text": text}], "parameters": {}}

    ##########################################
    ################# OTHER ##################
    ##########################################

    def extract_embedding_from_response(self, response_data: dict, modality: str) -> list[float] | None:
        """Extract the vector from a Vertex :predict response.

        The multimodal model answers {"predictions": [{"imageEmbedding": [...]}]} or
        {"predictions": [{"textEmbedding": [...]}]}; some model versions nest it under "embeddings".
        """
        predictions = response_data.get("predictions") or []
        if not predictions or not isinstance(predictions[0], dict):
            return None
        prediction = predictions[0]
        key = f"{modality}Embedding"

        vector = prediction.get(key)
        if vector is None:
            nested = (prediction.get("embeddings") or {}).get(key)
            vector = nested.get("values") if isinstance(nested, dict) else nested
        if vector is None:
            vector = prediction.get("embedding")
        return vector if isinstance(vector, list) else None
