"""A fake registry and token endpoint for httpx.MockTransport."""

import json

import httpx

REGISTRY = "registry.example.com"
REALM = "https://auth.example.com/token"
CHALLENGE = f'Bearer realm="{REALM}",service="{REGISTRY}",scope="repository:lib/app:pull"'


class FakeRegistry:
    """Records every request and answers from a per-path queue of responses.

    Token requests always succeed with ``token-<n>``. Registry requests take
    the next queued response for their path; the last one is repeated once
    the queue runs dry. Unknown paths get a 404.
    """

    def __init__(self):
        self.requests = []
        self.token_requests = []
        self.routes = {}
        self.issued = 0

    def queue(self, path, *responses):
        self.routes.setdefault(path, []).extend(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        if str(request.url).startswith(REALM):
            self.token_requests.append(request)
            self.issued += 1
            return httpx.Response(200, json={"token": f"token-{self.issued}"})

        self.requests.append(request)
        queued = self.routes.get(request.url.path)
        if not queued:
            template = httpx.Response(404, json={"errors": [{"code": "NAME_UNKNOWN"}]})
        else:
            template = queued.pop(0) if len(queued) > 1 else queued[0]
        # 스트리밍 응답은 한 번만 읽을 수 있으므로 매번 새 스트림으로 만든다
        return httpx.Response(
            template.status_code, headers=template.headers, stream=httpx.ByteStream(template.content)
        )


def unauthorized():
    return httpx.Response(401, headers={"WWW-Authenticate": CHALLENGE}, json={"errors": []})


def manifest_response(layers):
    body = {
        "schemaVersion": 2,
        "mediaType": "application/vnd.oci.image.manifest.v1+json",
        "layers": [{"digest": digest, "size": 1} for digest in layers],
    }
    return httpx.Response(200, content=json.dumps(body), headers={"Content-Type": body["mediaType"]})
