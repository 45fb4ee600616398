# layerproxy/services/registry_client_service.py
import asyncio
import httpx
import logging
from typing import Optional, Dict, Any
from functools import lru_cache

from layerproxy.core.config import settings
from layerproxy.core.errors import ProxyError
from layerproxy.models.reference import ImageReference, ResourceType
from layerproxy.services.www_authenticate import parse_www_authenticate

logger = logging.getLogger(__name__)

# Manifest 관련 Accept 헤더 상수 (서버가 이 순서를 참고해 형식을 고름)
ACCEPT_MANIFEST_OCI = "application/vnd.oci.image.manifest.v1+json"
ACCEPT_OCI_INDEX_V1 = "application/vnd.oci.image.index.v1+json"
ACCEPT_MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
ACCEPT_MANIFEST_LIST_V2 = "application/vnd.docker.distribution.manifest.list.v2+json"

COMMON_MANIFEST_ACCEPT_HEADERS = ", ".join([
    ACCEPT_MANIFEST_OCI,
    ACCEPT_OCI_INDEX_V1,
    ACCEPT_MANIFEST_V2,
    ACCEPT_MANIFEST_LIST_V2,
])


class RegistryClientError(ProxyError):
    """Base exception for registry client errors."""
    status_code = 502

class AuthChallengeMissingError(RegistryClientError):
    """A 401 response carried no usable Bearer challenge."""
    pass

class TokenEndpointError(RegistryClientError):
    """The token endpoint was unreachable or returned no token."""
    pass

class RegistryNetworkError(RegistryClientError):
    """Network error while talking to the registry."""
    pass

class RegistryResponseError(RegistryClientError):
    """The registry answered a manifest request with an error status."""
    pass

class ManifestDecodeError(RegistryClientError):
    """The manifest body is not valid JSON."""
    pass

class LayerIndexOutOfRangeError(RegistryClientError):
    """The manifest has no layer at the requested index."""
    status_code = 404


def resolve_layer(manifest: Dict[str, Any], layer: int = 0) -> str:
    """Returns the digest of ``manifest["layers"][layer]``.

    Negative indices count from the end of the list. Image indexes and manifest
    lists carry no ``layers`` array and are rejected the same way as an index
    that is out of range.
    """
    layers = manifest.get("layers") if isinstance(manifest, dict) else None
    if not isinstance(layers, list):
        raise LayerIndexOutOfRangeError("Manifest has no 'layers' array (image index or manifest list?)")
    try:
        entry = layers[layer]
    except IndexError:
        raise LayerIndexOutOfRangeError(f"Layer {layer} out of range, manifest has {len(layers)} layer(s)")
    digest = entry.get("digest") if isinstance(entry, dict) else None
    if not digest:
        raise LayerIndexOutOfRangeError(f"Layer {layer} has no digest")
    return digest


class RegistryClient:
    """Client for the registry v2 API with a single cached credential.

    The credential slot starts empty, is set by the first successful token
    exchange and replaced by every later one. It is never cleared. Concurrent
    requests that hit 401 with the same stale credential share one token
    exchange through ``_auth_lock``.
    """

    def __init__(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: int = settings.API_TIMEOUT_SECONDS,
    ):
        self.username = username
        self.password = password
        self.timeout = timeout
        self._http_client = http_client
        self._credential: Optional[str] = None
        self._auth_lock = asyncio.Lock()

    @property
    def credential(self) -> Optional[str]:
        return self._credential

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            # 기본은 리디렉트를 따라가지 않음 (블롭 리디렉트는 클라이언트에게 그대로 전달)
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=False,
                headers={"User-Agent": settings.USER_AGENT},
            )
        return self._http_client

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def authenticate(
        self,
        challenge_response: httpx.Response,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ) -> str:
        """Exchanges a 401 response's Bearer challenge for an Authorization value."""
        username = username if username is not None else self.username
        password = password if password is not None else self.password

        challenge = parse_www_authenticate(challenge_response.headers.get("www-authenticate"))
        bearer = challenge.get("bearer")
        if not bearer or not bearer.get("realm"):
            logger.warning(f"No Bearer challenge in 401 from {challenge_response.request.url}: {challenge}")
            raise AuthChallengeMissingError(
                f"Registry returned 401 without a Bearer challenge for {challenge_response.request.url}"
            )

        realm = bearer["realm"]
        params = {key: bearer[key] for key in ("scope", "service") if key in bearer}
        auth = httpx.BasicAuth(username, password or "") if username else None

        logger.info(f"Requesting token from {realm} (scope={params.get('scope')}, user={username or 'anonymous'})")
        try:
            response = await self.http_client.get(realm, params=params, auth=auth, follow_redirects=True)
        except httpx.RequestError as exc:
            logger.error(f"Token endpoint network error for {realm}: {exc}", exc_info=True)
            raise TokenEndpointError(f"Network error accessing token endpoint: {exc}") from exc

        if response.is_error:
            logger.error(f"Token endpoint {realm} responded with {response.status_code}")
            raise TokenEndpointError(f"Token endpoint responded with {response.status_code}")
        try:
            body = response.json()
        except ValueError as exc:
            raise TokenEndpointError(f"Token endpoint returned a non-JSON body: {exc}") from exc

        token = None
        if isinstance(body, dict):
            token = body.get("access_token")
            if token is None:
                token = body.get("token")
        if not token:
            raise TokenEndpointError("Token endpoint response has neither 'access_token' nor 'token'")
        return f"Bearer {token}"

    async def _refresh_credential(self, challenge_response: httpx.Response, stale: Optional[str]) -> str:
        async with self._auth_lock:
            if self._credential is not None and self._credential != stale:
                # 대기하는 동안 다른 요청이 이미 토큰을 갱신함
                logger.debug("Credential already refreshed by a concurrent request, reusing it")
                return self._credential
            self._credential = await self.authenticate(challenge_response)
            return self._credential

    async def _send(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]],
        credential: Optional[str],
        stream: bool,
        follow_redirects: bool,
    ) -> httpx.Response:
        request_headers = {}
        if credential:
            request_headers["Authorization"] = credential
        request_headers.update(headers or {})

        logger.debug(f"Registry Request: {method} {url}")
        request = self.http_client.build_request(method, url, headers=request_headers)
        try:
            response = await self.http_client.send(request, stream=stream, follow_redirects=follow_redirects)
        except httpx.RequestError as exc:
            logger.error(f"Registry network error for {method} {url}: {exc}", exc_info=True)
            raise RegistryNetworkError(f"Network error accessing registry: {exc}") from exc
        logger.debug(f"Registry Response: {response.status_code} {response.headers.get('Content-Type')}")
        return response

    async def request(
        self,
        reference: ImageReference,
        resource_type: ResourceType = "blobs",
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        credential: Optional[str] = None,
        stream: bool = False,
        follow_redirects: bool = False,
    ) -> httpx.Response:
        """Requests ``reference.url_for(resource_type)`` with the active credential.

        A 401 triggers exactly one token exchange and one retry, unless
        ``credential`` was forced by the caller. Any other status, including a
        second 401, is returned unchanged. Redirects are only followed when
        ``follow_redirects`` is set. With ``stream=True`` the caller owns
        the returned response and must close it.
        """
        url = reference.url_for(resource_type)
        active = credential if credential is not None else self._credential
        response = await self._send(method, url, headers, active, stream, follow_redirects)
        if response.status_code != 401 or credential is not None:
            return response

        await response.aclose()
        new_credential = await self._refresh_credential(response, active)
        response = await self._send(method, url, headers, new_credential, stream, follow_redirects)
        if response.status_code == 401:
            logger.warning(f"Registry still answered 401 for {url} after re-authentication")
        return response

    async def fetch_manifest(
        self,
        reference: ImageReference,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        request_headers = {"Accept": COMMON_MANIFEST_ACCEPT_HEADERS}
        request_headers.update(headers or {})
        response = await self.request(reference, "manifests", headers=request_headers, follow_redirects=True)
        if response.is_error:
            raise RegistryResponseError(
                f"Registry responded with {response.status_code} for manifest {reference}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ManifestDecodeError(f"Manifest for {reference} is not valid JSON: {exc}") from exc


@lru_cache()
def get_registry_client():
    return RegistryClient(username=settings.REGISTRY_USERNAME, password=settings.REGISTRY_PASSWORD)
