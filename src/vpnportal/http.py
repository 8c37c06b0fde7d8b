from typing import Optional


class Request(object):
    """The parts of an incoming HTTP request the portal looks at."""

    def __init__(self, method: str, path_info: str, root_uri: str,
                 query: Optional[dict] = None, post: Optional[dict] = None):
        self.method = method.upper()
        self.path_info = path_info or "/"
        self.root_uri = root_uri
        self.query = query or {}
        self.post = post or {}

    def get_query_parameter(self, name: str) -> Optional[str]:
        return self.query.get(name)

    def get_post_parameter(self, name: str) -> Optional[str]:
        return self.post.get(name)


class Response(object):

    def __init__(self, status_code: int = 200, headers: Optional[dict] = None, body=""):
        self.status_code = status_code
        self.headers = headers or {}
        self.body = body

    @classmethod
    def redirect(cls, location: str, status_code: int = 302):
        return cls(status_code, {"Location": location})

    def __repr__(self):
        return f"Response({self.status_code}, {self.headers})"
