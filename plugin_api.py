import logging
from enum import Enum
import requests as http_requests

logger = logging.getLogger(__name__)


class PluginOutcome(str, Enum):
    DELEGATED = "delegated"
    FELL_BACK = "fell_back"
    FAILED = "failed"


class PluginResponse:
    """Antwort des Plugin-Listeners: HTTP-Status plus JSON-Body (oder None)."""

    def __init__(self, status_code, data):
        self.status_code = status_code
        self.data = data

    @property
    def succeeded(self):
        # Nur ein eindeutiges success=true zählt als erledigt
        return 200 <= self.status_code < 300 and isinstance(self.data, dict) and self.data.get("success") is True

    def __repr__(self):
        return f"PluginResponse({self.status_code}, {self.data!r})"


class PluginClient:
    def __init__(self, host="127.0.0.1", port=8080, token="", timeout=10):
        self.host = host
        self.port = int(port)
        self.token = token or ""
        self.timeout = float(timeout)

    @property
    def base_url(self):
        return f"http://{self.host}:{self.port}"

    def call(self, path, payload):
        """
        POST an den lokalen HTTP-Listener des Plugins.
        Netzwerkfehler werden nicht geworfen, sondern als PluginResponse
        mit success=false und Fehlercode zurückgegeben.
        """
        url = f"{self.base_url}{path}"
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["X-Auth-Token"] = self.token

        logger.info(f"[PluginAPI] Calling {url}")
        try:
            resp = http_requests.post(url, json=payload, headers=headers, timeout=self.timeout)
        except http_requests.exceptions.Timeout:
            logger.error(f"[PluginAPI] Timeout after {self.timeout}s calling {url}")
            return PluginResponse(504, {
                "success": False,
                "error": "plugin_api_timeout",
                "message": "Plugin API request timed out",
            })
        except http_requests.exceptions.ConnectionError as e:
            logger.error(f"[PluginAPI] Plugin API unavailable at {url}: {e}")
            return PluginResponse(500, {
                "success": False,
                "error": "plugin_api_unavailable",
                "message": f"Plugin HTTP API is not available at {self.base_url}. Make sure the plugin is running.",
            })
        except http_requests.exceptions.RequestException as e:
            logger.error(f"[PluginAPI] Error calling {url}: {e}")
            return PluginResponse(500, {
                "success": False,
                "error": "plugin_api_error",
                "message": str(e),
            })

        try:
            data = resp.json()
        except ValueError:
            logger.warning(f"[PluginAPI] Non-JSON response from {url} (HTTP {resp.status_code})")
            data = None
        logger.info(f"[PluginAPI] {path} answered HTTP {resp.status_code}")
        return PluginResponse(resp.status_code, data)
