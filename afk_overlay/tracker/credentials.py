"""Credential providers for the tracker."""

import os
from typing import Mapping, Optional

from afk_overlay.models.tracker import TrackerCredentials


class StaticCredentialProvider:
    """Hands out a fixed set of credentials."""

    def __init__(self, credentials: Optional[TrackerCredentials] = None):
        self.credentials = credentials or TrackerCredentials()

    def get_config(self) -> TrackerCredentials:
        return self.credentials.model_copy()


class EnvCredentialProvider:
    """Reads credentials from the environment; empty values count as missing."""

    TOKEN = "TAPD_API_TOKEN"
    WORKSPACE_ID = "TAPD_WORKSPACE_ID"
    USER_NAME = "TAPD_NAME"
    USER_ROLE_FIELD = "TAPD_USER_ROLE_FIELD"

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._environ = environ if environ is not None else os.environ

    def get_config(self) -> TrackerCredentials:
        env = self._environ
        return TrackerCredentials(
            token=env.get(self.TOKEN) or None,
            workspace_id=env.get(self.WORKSPACE_ID) or None,
            user_name=env.get(self.USER_NAME) or None,
            user_role_field=env.get(self.USER_ROLE_FIELD) or None,
        )
