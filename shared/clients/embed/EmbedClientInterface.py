from abc import abstractmethod
import base64

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.helper.errors import UpstreamError


class EmbedClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "embed"
        """
        return "embed"

    ################ ENDPOINTS ##################
    @abstractmethod
    def get_endpoint_embedding(self) -> str:
        """
        Returns the endpoint path (or absolute URL) for embedding requests.

        Raises:
            NotImplementedError: If the method is not implemented in a subclass.
        """
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_image_payload(self, image_b64: str) -> dict:
        """Build the backend-specific request body for embedding one image.

        Args:
            image_b64 (str): The image bytes, base64 encoded.

        Returns:
            dict: JSON-serialisable request body.
        """
        pass

    @abstractmethod
    def get_text_payload(self, text: str) -> dict:
        """Build the backend-specific request body for embedding one text into the image space.

        Args:
            text (str): The text to embed.

        Returns:
            dict: JSON-serialisable request body.
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_embedding_from_response(self, response_data: dict, modality: str) -> list[float] | None:
        """Extract the embedding vector from a raw embedding response.

        Args:
            response_data (dict): The parsed JSON response body.
            modality (str): "image" or "text".

        Returns:
            list[float] | None: The vector, or None if the response has an unexpected shape.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def _do_embed(self, body: dict, modality: str) -> list[float]:
        response = await self.do_request(method="POST", endpoint=self.get_endpoint_embedding(), json=body)
        if not response.is_success:
            self.raise_upstream_error(response, f"{self.get_engine_name()} {modality} embedding")
        vector = self.extract_embedding_from_response(response.json(), modality)
        if not vector:
            raise UpstreamError(f"{self.get_engine_name()} returned no {modality} embedding of the expected shape")
        return [float(v) for v in vector]

    async def do_embed_image(self, image: bytes) -> list[float]:
        """Embed raw image bytes.

        Args:
            image (bytes): The image content.

        Returns:
            list[float]: The embedding vector.

        Raises:
            UpstreamError: If the request fails or the response carries no vector.
        """
        b64 = base64.b64encode(image).decode("ascii")
        return await self._do_embed(self.get_image_payload(b64), "image")

    async def do_embed_text(self, text: str) -> list[float]:
        """Embed a text query into the same vector space as the images.

        Raises:
            UpstreamError: If the request fails or the response carries no vector.
        """
        return await self._do_embed(self.get_text_payload(text), "text")
