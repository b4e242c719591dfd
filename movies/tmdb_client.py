import logging

import requests
from django.conf import settings

logger = logging.getLogger(__name__)


class TMDbError(Exception):
    pass


class TMDbClient:
    """
    Thin wrapper around the TMDB v3 REST API.

    Authenticates with a v4 read access token when one is configured,
    otherwise with the v3 ``api_key`` query parameter.
    """

    def __init__(self, api_key=None, access_token=None, base_url=None, timeout=10, session=None):
        self.api_key = api_key if api_key is not None else settings.TMDB_API_KEY
        self.access_token = access_token if access_token is not None else settings.TMDB_ACCESS_TOKEN
        self.base_url = (base_url or settings.TMDB_BASE_URL).rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if self.access_token:
            self.session.headers["Authorization"] = f"Bearer {self.access_token}"

    @property
    def configured(self):
        return bool(self.access_token or self.api_key)

    def _get(self, path, **params):
        params.setdefault("language", "en-US")
        if not self.access_token and self.api_key:
            params["api_key"] = self.api_key
        try:
            resp = self.session.get(f"{self.base_url}{path}", params=params, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise TMDbError(f"TMDB request {path} failed: {e}") from e
        return resp.json()

    def get_genres(self):
        return self._get("/genre/movie/list").get("genres", [])

    def get_movie_list(self, category="popular", page=1):
        return self._get(f"/movie/{category}", page=page).get("results", [])

    def get_movie_details(self, tmdb_id):
        return self._get(f"/movie/{tmdb_id}", append_to_response="credits,videos")
