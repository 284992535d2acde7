"""
Module `ingestion.eemanager` provides the EarthEngineManager class to
encapsulate Google Earth Engine initialization, request deadlines, retries,
and image collection retrieval.
"""

import os
import json
import time
from typing import Optional, Any

from google.oauth2.credentials import Credentials
import httplib2

import ee
from ee import EEException

from solarsat.core.deferred import Deferred
from solarsat.core.errors import ExternalServiceError
from solarsat.core.logger import Logger

# Errors worth one more attempt: EE service errors and transport failures
TRANSIENT_ERRORS = (EEException, OSError, httplib2.HttpLib2Error)


class EarthEngineManager:
    """
    Manages interaction with Google Earth Engine: initialization, retries and
    collection retrieval. Every remote evaluation goes through
    :py:meth:`safe_get_info`.
    """

    def __init__(
        self,
        credential_path: Optional[str] = None,
        project: Optional[str] = None,
        timeout: Optional[float] = 300,
        max_retries: int = 2,
        logger=None,
    ):
        self.credential_path = credential_path
        # Allow non-interactive auth using a refresh token passed via env.
        self.token_env = os.getenv("EARTHENGINE_TOKEN")
        self.project = project or os.getenv("SOLARSAT_EE_PROJECT")
        self.timeout = timeout
        self.max_retries = max_retries
        self.logger = logger or Logger.get_logger(__name__)
        self._initialized = False

    def initialize(self) -> None:
        """
        Authenticate & initialize Earth Engine once per process.
        A service-account JSON path wins over EARTHENGINE_TOKEN, which wins
        over default credentials; interactive auth is the last resort.
        """
        if self._initialized:
            return
        project = self.project
        try:
            if self.credential_path:
                sa_credentials: Any = ee.ServiceAccountCredentials(
                    None, self.credential_path  # type: ignore[arg-type]
                )
                ee.Initialize(sa_credentials, project=project)
            elif self.token_env:
                creds = self._token_credentials(self.token_env)
                if creds is not None:
                    ee.Initialize(creds, project=project)
                else:
                    ee.Initialize(project=project)
            else:
                ee.Initialize(project=project)
        except EEException:
            ee.Authenticate()
            ee.Initialize(project=project)
        if self.timeout:
            ee.data.setDeadline(int(self.timeout * 1000))
        self._initialized = True

    @staticmethod
    def _token_credentials(token_env: str) -> Optional[Credentials]:
        """Build refresh-token credentials from a JSON string or file path."""
        creds_data = None
        if os.path.exists(token_env):
            with open(token_env, "r", encoding="utf-8") as fh:
                creds_data = json.load(fh)
        else:
            try:
                creds_data = json.loads(token_env)
            except json.JSONDecodeError:
                return None
        if not creds_data or "refresh_token" not in creds_data:
            return None
        return Credentials(
            None,
            refresh_token=creds_data.get("refresh_token"),
            token_uri=creds_data.get("token_uri", ee.oauth.TOKEN_URI),
            client_id=creds_data.get("client_id", ee.oauth.CLIENT_ID),
            client_secret=creds_data.get("client_secret", ee.oauth.CLIENT_SECRET),
            scopes=creds_data.get("scopes", ee.oauth.SCOPES),
            quota_project_id=creds_data.get("project"),
        )

    def safe_get_info(self, obj, description: str = "getInfo"):
        """
        Wrapper for obj.getInfo() that:
          - retries transient errors with exponential backoff
          - gives up immediately on PERMISSION_DENIED
          - raises ExternalServiceError after max_retries attempts
        """
        self.initialize()
        attempts = max(1, self.max_retries)
        for attempt in range(1, attempts + 1):
            try:
                return obj.getInfo()
            except TRANSIENT_ERRORS as e:
                msg = str(e) or type(e).__name__
                if "PERMISSION_DENIED" in msg:
                    self.logger.error("Earth Engine permission denied: %s", msg)
                    raise ExternalServiceError(
                        f"Earth Engine permission denied during {description}: {msg}"
                    ) from e
                if attempt < attempts:
                    backoff = 2 ** (attempt - 1)
                    self.logger.warning(
                        "Transient error in %s (attempt %d/%d): %s - retrying in %ds",
                        description,
                        attempt,
                        attempts,
                        msg,
                        backoff,
                    )
                    time.sleep(backoff)
                    continue
                self.logger.error(
                    "%s failed after %d attempts: %s", description, attempt, msg
                )
                raise ExternalServiceError(
                    f"Earth Engine request failed during {description}: {msg}"
                ) from e
        raise AssertionError("unreachable")  # pragma: no cover

    def deferred_info(self, obj, description: str = "getInfo") -> Deferred:
        """Return a handle that evaluates *obj* only when asked."""
        return Deferred(lambda: self.safe_get_info(obj, description), description)

    def get_image_collection(
        self,
        collection_id: str,
        start_date: str,
        end_date: str,
        region,
        cloud_mask=None,
    ) -> ee.ImageCollection:
        """
        Return an EE ImageCollection filtered by date (end exclusive) and
        region, with an optional per-image cloud mask function applied.
        """
        self.initialize()
        coll = (
            ee.ImageCollection(collection_id)
            .filterDate(start_date, end_date)
            .filterBounds(region)
        )
        if cloud_mask is not None:
            coll = coll.map(cloud_mask)
        return coll


# Convenience singleton
ee_manager = EarthEngineManager()
