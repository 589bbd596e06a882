"""
Google Workspace implementation of the identity directory.

Responsibilities:
- Authenticate via Service Account w/ Domain-Wide Delegation
- Groups + memberships through the Cloud Identity Groups API
- User lookup by email through the Admin SDK Directory API
- Map HTTP failures onto the groupsync error taxonomy
"""

import logging
import re
from typing import Dict, Iterable, Iterator, List, Optional

import httplib2
from google.oauth2 import service_account
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .errors import (
    AmbiguousUserError,
    ConflictError,
    DirectoryError,
    NotFoundError,
    TransportError,
)
from .models import ActivityStatus, GroupProfile, RemoteGroup, RemoteUser
from .utils import normalize_email, parse_timestamp, retry

LOGGER = logging.getLogger(__name__)

DISCUSSION_FORUM_LABEL = "cloudidentity.googleapis.com/groups.discussion_forum"
TRANSIENT_STATUSES = frozenset((429, 500, 502, 503, 504))
PAGE_SIZE = 200


def to_group_email(group_name: str, group_domain: str) -> str:
    """
    Map a group name to a Google group email.
    If the name already contains '@', return it lowercased; otherwise append '@{group_domain}'.
    """
    group_name = group_name.strip()
    if "@" in group_name:
        return group_name.lower()
    local = re.sub(r"\s+", "-", group_name)
    return f"{local}@{group_domain}".lower()


def _http_status(error: HttpError) -> Optional[int]:
    status = getattr(error.resp, "status", None)
    try:
        return int(status)
    except (TypeError, ValueError):
        return None


def _is_transient(error: BaseException) -> bool:
    return isinstance(error, HttpError) and _http_status(error) in TRANSIENT_STATUSES


def translate_http_error(error: HttpError, what: str) -> DirectoryError:
    status = _http_status(error)
    message = f"{what} failed ({status}): {error}"
    if status == 404:
        return NotFoundError(message, status)
    if status in (400, 409, 412):
        return ConflictError(message, status)
    return TransportError(message, status)


class GoogleDirectory:
    def __init__(
        self,
        creds_info: dict,
        delegated_subject: str,
        group_domain: str,
        customer_id: str,
        google_api_scopes: Optional[Iterable[str]] = None,
        http_timeout: float = 30.0,
    ):
        """
        :param creds_info: service account json (dict)
        :param delegated_subject: admin email to impersonate
        :param group_domain: domain new group emails are created in
        :param customer_id: Workspace customer id (e.g. C0123abcd)
        """
        creds = service_account.Credentials.from_service_account_info(
            creds_info, scopes=google_api_scopes
        )
        delegated = creds.with_subject(delegated_subject)

        base_http = httplib2.Http(timeout=http_timeout)
        authed_http = AuthorizedHttp(delegated, http=base_http)

        # cache_discovery=False avoids file writes in some environments
        self._groups_svc = build(
            "cloudidentity", "v1", http=authed_http, cache_discovery=False
        )
        self._users_svc = build(
            "admin", "directory_v1", http=authed_http, cache_discovery=False
        )
        self._group_domain = group_domain
        self._customer_id = customer_id
        self._num_retries = 3

    @property
    def _parent(self) -> str:
        return f"customers/{self._customer_id}"

    # ---------- Request execution ----------

    @retry((HttpError,), tries=5, retry_if=_is_transient)
    def _execute(self, request) -> dict:
        return request.execute(num_retries=self._num_retries)

    def _call(self, request, what: str) -> dict:
        try:
            return self._execute(request) or {}
        except HttpError as e:
            raise translate_http_error(e, what) from e

    def _paginate(self, make_request, key: str, what: str) -> Iterator[dict]:
        page_token: Optional[str] = None
        while True:
            resp = self._call(make_request(page_token), what)
            yield from resp.get(key, [])
            page_token = resp.get("nextPageToken")
            if not page_token:
                break

    # ---------- Groups ----------

    def _to_remote_group(self, data: Dict, memberships: Optional[List[Dict]] = None) -> RemoteGroup:
        last_membership = None
        for m in memberships or ():
            for stamp in (m.get("updateTime"), m.get("createTime")):
                parsed = parse_timestamp(stamp)
                if parsed and (last_membership is None or parsed > last_membership):
                    last_membership = parsed
        return RemoteGroup(
            id=data["name"],
            name=data.get("displayName", ""),
            description=data.get("description", ""),
            email=(data.get("groupKey") or {}).get("id"),
            created_at=parse_timestamp(data.get("createTime")),
            last_updated_at=parse_timestamp(data.get("updateTime")),
            last_membership_updated_at=last_membership,
        )

    def get_group(self, group_id: str) -> RemoteGroup:
        data = self._call(
            self._groups_svc.groups().get(name=group_id), f"get group {group_id}"
        )
        return self._to_remote_group(data, list(self._memberships(group_id)))

    def list_groups(self, name_query: str) -> List[RemoteGroup]:
        needle = name_query.strip().lower()

        def make_request(page_token):
            return self._groups_svc.groups().list(
                parent=self._parent,
                view="BASIC",
                pageSize=PAGE_SIZE,
                pageToken=page_token,
            )

        return [
            self._to_remote_group(g)
            for g in self._paginate(make_request, "groups", "list groups")
            if needle in g.get("displayName", "").lower()
        ]

    def create_group(self, profile: GroupProfile) -> RemoteGroup:
        group_email = to_group_email(profile.name, self._group_domain)
        body = {
            "parent": self._parent,
            "groupKey": {"id": group_email},
            "displayName": profile.name,
            "description": profile.description,
            "labels": {DISCUSSION_FORUM_LABEL: ""},
        }
        LOGGER.info("Creating Google group %s (%s)", profile.name, group_email)
        op = self._call(
            self._groups_svc.groups().create(body=body, initialGroupConfig="EMPTY"),
            f"create group {group_email}",
        )
        group_id = (op.get("response") or {}).get("name")
        if not group_id:
            # Operation still running; resolve the id from the group key.
            found = self._call(
                self._groups_svc.groups().lookup(groupKey_id=group_email),
                f"lookup group {group_email}",
            )
            group_id = found["name"]
        return self.get_group(group_id)

    def update_group(self, group_id: str, profile: GroupProfile) -> RemoteGroup:
        body = {"displayName": profile.name, "description": profile.description}
        LOGGER.info("Updating Google group %s", group_id)
        self._call(
            self._groups_svc.groups().patch(
                name=group_id, updateMask="displayName,description", body=body
            ),
            f"update group {group_id}",
        )
        return self.get_group(group_id)

    def delete_group(self, group_id: str) -> None:
        try:
            self._call(
                self._groups_svc.groups().delete(name=group_id),
                f"delete group {group_id}",
            )
            LOGGER.info("Deleted Google group %s", group_id)
        except NotFoundError:
            LOGGER.info("Google group %s already absent", group_id)

    # ---------- Membership ----------

    def _memberships(self, group_id: str) -> Iterator[dict]:
        def make_request(page_token):
            return self._groups_svc.groups().memberships().list(
                parent=group_id, view="FULL", pageSize=PAGE_SIZE, pageToken=page_token
            )

        return self._paginate(make_request, "memberships", f"list members of {group_id}")

    def list_group_members(self, group_id: str) -> List[RemoteUser]:
        """
        Direct user members of the group. Memberships carry no account
        state, so the member key stands in for the id and the activity is OTHER.
        """
        members = []
        for m in self._memberships(group_id):
            if m.get("type", "USER") != "USER":
                continue
            key = (m.get("preferredMemberKey") or {}).get("id")
            if not key:
                continue
            members.append(RemoteUser(id=key, email=normalize_email(key)))
        return members

    def add_group_member(self, group_id: str, user: RemoteUser) -> None:
        body = {
            "preferredMemberKey": {"id": user.email},
            "roles": [{"name": "MEMBER"}],
        }
        try:
            self._call(
                self._groups_svc.groups().memberships().create(parent=group_id, body=body),
                f"add {user.email} to {group_id}",
            )
        except ConflictError as e:
            if e.status == 409:
                LOGGER.debug("Member %s already in %s", user.email, group_id)
                return
            raise

    def remove_group_member(self, group_id: str, user: RemoteUser) -> None:
        memberships = self._groups_svc.groups().memberships()
        try:
            found = self._call(
                memberships.lookup(parent=group_id, memberKey_id=user.email),
                f"lookup {user.email} in {group_id}",
            )
            self._call(
                memberships.delete(name=found["name"]),
                f"remove {user.email} from {group_id}",
            )
        except NotFoundError:
            LOGGER.debug("Member %s already gone from %s", user.email, group_id)

    # ---------- Users ----------

    @staticmethod
    def _activity_status(data: Dict) -> ActivityStatus:
        if data.get("suspended"):
            return ActivityStatus.INACTIVE
        if data.get("archived"):
            return ActivityStatus.OTHER
        return ActivityStatus.ACTIVE

    def find_user_by_email(self, email: str) -> RemoteUser:
        email = normalize_email(email)
        resp = self._call(
            self._users_svc.users().list(
                customer=self._customer_id, query=f"email:'{email}'", maxResults=10
            ),
            f"find user {email}",
        )
        # The query also matches aliases; memberships are keyed by primary email.
        users = [
            u
            for u in resp.get("users", [])
            if normalize_email(u.get("primaryEmail", "")) == email
        ]
        if not users:
            raise NotFoundError(f"User not found: {email}")
        if len(users) > 1:
            raise AmbiguousUserError(f"More than one user found with email {email}")
        data = users[0]
        return RemoteUser(
            id=data["id"],
            email=normalize_email(data.get("primaryEmail", email)),
            activity_status=self._activity_status(data),
        )
