"""Initial setup state kept on the client."""

import logging

from code_assistant.interfaces.storage_interface import PersistencePort
from code_assistant.models.setup import SetupRequest, SetupStatus

logger = logging.getLogger(__name__)

CONFIGURED_MODEL_KEY = "configuredModelId"


class SetupService:
    """Track whether a default chat model has been chosen."""

    def __init__(self, storage: PersistencePort) -> None:
        """Initialize setup service.

        Args:
            storage: Persistence port holding the configured model id
        """
        self.storage = storage
        self._configured_model_id: str | None = storage.get_item(CONFIGURED_MODEL_KEY) or None

    @property
    def configured_model_id(self) -> str | None:
        return self._configured_model_id

    def is_setup_complete(self) -> bool:
        """Return True once a model has been configured, here or in a previous run."""
        if self._configured_model_id is None:
            self._configured_model_id = self.storage.get_item(CONFIGURED_MODEL_KEY) or None
        return self._configured_model_id is not None

    async def get_setup_status(self) -> SetupStatus:
        """Report the current setup state.

        Returns:
            Setup status with the configured model id when configured
        """
        configured = self.is_setup_complete()
        return SetupStatus(
            is_configured=configured,
            configured_model_id=self._configured_model_id if configured else None,
        )

    async def save_setup(self, request: SetupRequest) -> None:
        """Mark the client configured with the selected model.

        Args:
            request: Selected model id and optional API key

        Raises:
            ValueError: If no model was selected
        """
        model_id = request.model_id.strip()
        if not model_id:
            raise ValueError("Please select a model.")
        self._configured_model_id = model_id
        self.storage.set_item(CONFIGURED_MODEL_KEY, model_id)
        if request.api_key:
            logger.info("API key was provided (optional feature).")
        logger.info("Setup saved with model '%s'.", model_id)
