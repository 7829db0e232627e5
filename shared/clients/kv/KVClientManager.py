from shared.helper.HelperConfig import HelperConfig
from shared.helper.errors import ConfigurationError
from shared.clients.kv.KVClientInterface import KVClientInterface


class KVClientManager:
    """
    Manager class to handle the key-value metadata store client based on configuration.
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """
        Reads the KV engine from ENV configuration.

        Raises:
            ConfigurationError: If KV_ENGINE is not set.
        """
        engine = self.helper_config.get_string_val("KV_ENGINE")
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> KVClientInterface:
        """
        Initializes the KV client based on the engine specified in the configuration.

        Raises:
            ConfigurationError: If the engine has no client implementation.
        """
        engine = self._get_engine_from_env()
        className = f"KVClient{engine}"
        try:
            module = __import__(
                f"shared.clients.kv.{engine.lower()}.{className}",
                fromlist=[className],
            )
            client_class = getattr(module, className)
        except (ImportError, AttributeError) as e:
            raise ConfigurationError(f"Unsupported KV engine specified: '{engine}'. Error: {e}")

        client = client_class(helper_config=self.helper_config)
        self.logging.debug(f"Instantiated KV client for engine: {engine}")
        return client

    def get_client(self) -> KVClientInterface:
        """
        Returns the instantiated KV client.
        """
        return self.client
