"""Webform record controller - application wiring."""
import logging

from .config_manager import ConfigManager
from .coordinator import RecordCoordinator
from .gui import ConsoleGUI
from .handlers.webform_handler import WebformHandler
from .logging_config import setup_logging
from .record_store import RecordStore
from .services.notifications import get_notifier
from .services.submission_transport import SubmissionTransport
from .services.upload_queue import UploadQueue
from .session_adapter import FormSession


class WebformApp:
    """Owns the services, the coordinator and the handler of one form."""

    def __init__(self, config=None, gui=None, store=None, transport=None, notifier=None,
                 session_factory=None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.config = config
        self.gui = gui
        self.store = store
        self.transport = transport
        self.notifier = notifier
        self.session_factory = session_factory
        self.upload_queue = None
        self.coordinator = None
        self.handler = None

    def startup(self):
        """Initialize configuration, storage, transport and handlers."""
        self.logger.info("Starting webform initialization")

        if self.config is None:
            self.config = ConfigManager()
        self.logger.info(f"Configuration loaded: submission URL={self.config.submission_url}")

        if self.store is None:
            self.store = RecordStore(self.config.db_path, self.config.enketo_id)
        self.logger.debug("Record store initialized")

        if self.transport is None:
            self.transport = SubmissionTransport(
                self.config.submission_url,
                timeout=self.config.api_timeout,
                max_retries=self.config.api_max_retries,
                retry_delay=self.config.api_retry_delay,
                login_url=self.config.login_url
            )
        if self.notifier is None:
            self.notifier = get_notifier()

        self.upload_queue = UploadQueue(
            self.store,
            self.transport,
            notifier=self.notifier,
            max_retries=self.config.upload_max_retries,
            base_backoff_seconds=self.config.upload_base_backoff_seconds
        )
        self.logger.debug("Upload queue initialized")

        self.coordinator = RecordCoordinator(
            self.config,
            self.store,
            upload_queue=self.upload_queue,
            transport=self.transport,
            notifier=self.notifier,
            session_factory=self.session_factory or FormSession
        )
        if self.gui is None:
            self.gui = ConsoleGUI()
        self.handler = WebformHandler(self)
        self.logger.info("Webform initialization complete")
        return self

    def shutdown(self):
        """Stop timers and release the record store."""
        if self.handler:
            self.handler.cancel_auto_save()
            if self.notifier:
                self.notifier.unsubscribe(self.handler.on_notification)
        if self.upload_queue:
            self.upload_queue.cancel_scheduled()
        if self.store:
            self.store.close()
        self.logger.info("Webform shut down")


def create_app(config=None, gui=None, **kwargs):
    """Build and start a WebformApp."""
    setup_logging()
    return WebformApp(config=config, gui=gui, **kwargs).startup()
