"""
Central configuration.
Reads environment variables once and exposes a simple dataclass.
"""

import json
import os
from dataclasses import dataclass
from typing import List, Optional

from dotenv import load_dotenv
from google.cloud import secretmanager

from .models import SyncPolicy
from .reconciler import DEFAULT_FINALIZER

DEFAULT_SCOPES = [
    "https://www.googleapis.com/auth/cloud-identity.groups",
    "https://www.googleapis.com/auth/admin.directory.user.readonly",
]


load_dotenv()


@dataclass(frozen=True)
class Config:
    delegated_subject: str
    group_domain: str
    customer_id: str
    log_level: str
    log_file: Optional[str]
    service_account_json_path: Optional[str]
    service_account_json_inline: Optional[str]
    service_account_secret_manager: bool
    gauth_secret_key_id: Optional[str]
    gauth_secret_ver: Optional[str]
    gauth_secret_type: Optional[str]
    gauth_scopes: List[str]
    gauth_project_id: Optional[str]
    records_dir: str
    finalizer_name: str
    sync_policy: SyncPolicy
    max_passes: int
    http_timeout: float

    @staticmethod
    def load() -> "Config":
        policy = os.getenv("SYNC_POLICY", SyncPolicy.DIFF.value).strip().lower()
        try:
            sync_policy = SyncPolicy(policy)
        except ValueError:
            raise ValueError(
                f"SYNC_POLICY must be one of {[p.value for p in SyncPolicy]}, got {policy!r}"
            ) from None

        config = Config(
            delegated_subject=os.getenv("GAUTH_GOOGLE_DELEGATED_SUBJECT", "").strip(),
            group_domain=os.getenv("GROUP_DOMAIN", "").strip(),
            customer_id=os.getenv("GAUTH_CUSTOMER_ID", "").strip(),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_file=os.getenv("LOG_FILE", "groupsync.log").strip() or None,
            service_account_json_path=os.getenv(
                "GOOGLE_APPLICATION_CREDENTIALS", ""
            ).strip()
            or None,
            service_account_json_inline=os.getenv("SERVICE_ACCOUNT_JSON", "").strip()
            or None,
            service_account_secret_manager=os.getenv(
                "SERVICE_ACCOUNT_SECRET_MANAGER", "true"
            )
            .strip()
            .lower()
            == "true",
            gauth_secret_key_id=os.getenv("GAUTH_SECRET_KEY_ID", "").strip() or None,
            gauth_secret_ver=os.getenv("GAUTH_SECRET_VER", "").strip() or None,
            gauth_secret_type=os.getenv("GAUTH_SECRET_TYPE", "").strip() or None,
            gauth_scopes=(
                [s.strip() for s in os.getenv("GAUTH_SCOPES", "").split(",") if s.strip()]
                or list(DEFAULT_SCOPES)
            ),
            gauth_project_id=os.getenv("GAUTH_PROJECT_ID", "").strip() or None,
            records_dir=os.getenv("RECORDS_DIR", "records").strip(),
            finalizer_name=os.getenv("FINALIZER_NAME", DEFAULT_FINALIZER).strip(),
            sync_policy=sync_policy,
            max_passes=int(os.getenv("MAX_PASSES", "3").strip()),
            http_timeout=float(os.getenv("HTTP_TIMEOUT", "30").strip()),
        )
        config.validate()
        return config

    def load_credential_from_secret_manager(self, p_id, key, ver, type="json"):
        client = secretmanager.SecretManagerServiceClient()
        secret_key_name = f"projects/{p_id}/secrets/{key}/versions/{ver}"
        response = client.access_secret_version(request={"name": secret_key_name})

        if type == "json":
            return json.loads(response.payload.data.decode("UTF-8"))
        return response.payload.data.decode("UTF-8")

    def get_service_account_info(self) -> dict:
        """
        Returns the service account JSON content, from file path, inline env or Secret Manager.
        Raises ValueError if none provided.
        """
        if self.service_account_json_path:
            with open(self.service_account_json_path, "r", encoding="utf-8") as f:
                return json.load(f)
        if self.service_account_json_inline:
            return json.loads(self.service_account_json_inline)
        if self.service_account_secret_manager:
            if (
                not self.gauth_project_id
                or not self.gauth_secret_key_id
                or not self.gauth_secret_ver
            ):
                raise ValueError(
                    "Service account secret manager requires GAUTH_PROJECT_ID, "
                    "GAUTH_SECRET_KEY_ID, and GAUTH_SECRET_VER to be set."
                )
            return self.load_credential_from_secret_manager(
                self.gauth_project_id,
                self.gauth_secret_key_id,
                self.gauth_secret_ver,
                self.gauth_secret_type or "json",
            )
        raise ValueError(
            "Service account credentials not found. Provide GOOGLE_APPLICATION_CREDENTIALS (path), "
            "SERVICE_ACCOUNT_JSON (inline JSON) or SERVICE_ACCOUNT_SECRET_MANAGER=true."
        )

    def validate(self) -> None:
        if not self.delegated_subject:
            raise ValueError(
                "Config is missing; GAUTH_GOOGLE_DELEGATED_SUBJECT is required."
            )
        if not self.group_domain:
            raise ValueError("Config is missing; GROUP_DOMAIN is required.")
        if not self.customer_id:
            raise ValueError("Config is missing; GAUTH_CUSTOMER_ID is required.")
        if not self.finalizer_name:
            raise ValueError("Config is missing; FINALIZER_NAME must not be empty.")
        if self.max_passes < 1:
            raise ValueError("MAX_PASSES must be at least 1.")
