from shared.helper.HelperConfig import HelperConfig
from shared.clients.blob.BlobClientInterface import BlobClientInterface


class BlobClientManager:
    """Manager class to instantiate the configured blob store client."""

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """Read the blob store engine name from env configuration.

        Returns:
            str: Capitalised engine name (e.g. "Firebase").

        Raises:
            ValueError: If BLOB_ENGINE is not set or empty.
        """
        engine = self.helper_config.get_string_val("BLOB_ENGINE", default="")
        if not engine:
            raise ValueError("No blob store engine specified in configuration (BLOB_ENGINE).")
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> BlobClientInterface:
        """Instantiate the blob store client for the configured engine.

        Returns:
            BlobClientInterface: The instantiated client.

        Raises:
            ValueError: If the engine is unsupported or cannot be imported.
        """
        engine = self._get_engine_from_env()
        class_name = f"BlobClient{engine}"
        try:
            module = __import__(
                f"shared.clients.blob.{engine.lower()}.{class_name}",
                fromlist=[class_name],
            )
            client_class = getattr(module, class_name)
        except (ImportError, AttributeError) as e:
            raise ValueError("Unsupported blob store engine '%s'. Error: %s" % (engine, e))
        client = client_class(helper_config=self.helper_config)
        self.logging.debug("Instantiated blob store client for engine: %s", engine)
        return client

    def get_client(self) -> BlobClientInterface:
        """Return the instantiated blob store client."""
        return self.client
