# layerproxy/models/reference.py
from pydantic import BaseModel, Field
from typing import Literal, Optional

from layerproxy.core.errors import ProxyError

ResourceType = Literal["manifests", "blobs"]

DEFAULT_TAG = "latest"


class MalformedReferenceError(ProxyError):
    """The reference string does not match ``domain/path[:tag][@digest]``."""
    status_code = 400


class ImageReference(BaseModel):
    """An image coordinate: registry domain, repository path, tag and digest.

    ``digest`` is the one field that is changed after parsing: once a manifest
    has been resolved to a layer, the reference is pointed at that blob.
    """
    domain: str = Field(..., description="Registry host, e.g. registry.example.com")
    path: str = Field(..., description="Repository path, e.g. library/nginx")
    tag: str = Field(DEFAULT_TAG, description="Tag, empty when only a digest was given")
    digest: Optional[str] = Field(None, description="Content digest, e.g. sha256:...")

    @classmethod
    def parse(cls, reference: str) -> "ImageReference":
        """Parses ``domain/path[:tag][@digest]``.

        The path ends at the first ``:`` or ``@``; the tag runs up to the first
        ``@`` after it and the digest takes the remainder.
        """
        domain, sep, remainder = reference.partition("/")
        if not sep:
            raise MalformedReferenceError(f"Reference '{reference}' has no '/' between domain and path")
        if "." not in domain:
            raise MalformedReferenceError(f"Reference '{reference}' does not start with a registry domain")

        name, at, digest = remainder.partition("@")
        path, colon, tag = name.partition(":")
        if not path:
            raise MalformedReferenceError(f"Reference '{reference}' has an empty repository path")
        if colon and not tag:
            raise MalformedReferenceError(f"Reference '{reference}' has an empty tag")
        if at and not digest:
            raise MalformedReferenceError(f"Reference '{reference}' has an empty digest")

        if not colon:
            # 태그도 다이제스트도 없으면 latest, 다이제스트만 있으면 빈 태그
            tag = "" if at else DEFAULT_TAG
        return cls(domain=domain, path=path, tag=tag, digest=digest if at else None)

    def url_for(self, resource_type: ResourceType = "manifests") -> str:
        identifier = self.digest if self.digest is not None else self.tag
        return f"https://{self.domain}/v2/{self.path}/{resource_type}/{identifier}"

    def __str__(self) -> str:
        reference = f"{self.domain}/{self.path}"
        if self.tag:
            reference += f":{self.tag}"
        if self.digest:
            reference += f"@{self.digest}"
        return reference
