from shared.helper.HelperConfig import HelperConfig
from shared.helper.errors import ConfigurationError
from shared.clients.store.StoreClientInterface import StoreClientInterface


class StoreClientManager:
    """
    Manager class to handle the remote file store client based on configuration.
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """
        Reads the store engine from ENV configuration. Defaults to "drive".

        Returns:
            str: The capitalized name of the store engine, e.g. "Drive".
        """
        engine = self.helper_config.get_string_val("STORE_ENGINE", default="drive")
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> StoreClientInterface:
        """
        Imports and instantiates the store client class of the configured engine.

        Raises:
            ConfigurationError: If the engine has no client implementation.
        """
        engine = self._get_engine_from_env()
        className = f"StoreClient{engine}"
        try:
            module = __import__(
                f"shared.clients.store.{engine.lower()}.{className}",
                fromlist=[className],
            )
            client_class = getattr(module, className)
        except (ImportError, AttributeError) as e:
            raise ConfigurationError(f"Unsupported store engine specified: '{engine}'. Error: {e}")

        client = client_class(helper_config=self.helper_config)
        self.logging.debug(f"Instantiated store client for engine: {engine}")
        return client

    def get_client(self) -> StoreClientInterface:
        """
        Returns the instantiated store client.
        """
        return self.client
