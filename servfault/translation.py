"""Message catalog used for the titles and bodies of error pages."""

from pathlib import Path
from typing import Any

import yaml

from servfault.exceptions import ServFaultConfigError

DEFAULT_MESSAGES: dict[str, str] = {
    "error.400.name": "Bad Request",
    "error.400.message": "The request could not be understood by the server.",
    "error.401.name": "Unauthorized",
    "error.401.message": "You need to sign in to view this page.",
    "error.403.name": "Forbidden",
    "error.403.message": "You do not have permission to access this page.",
    "error.404.name": "Not Found",
    "error.404.message": "The page you are looking for could not be found.",
    "error.405.name": "Method Not Allowed",
    "error.405.message": "The method used is not allowed for the requested resource.",
    "error.419.name": "Page Expired",
    "error.419.message": "The page has expired, please refresh and try again.",
    "error.422.name": "Unprocessable Entity",
    "error.422.message": "The submitted data was invalid.",
    "error.429.name": "Too Many Requests",
    "error.429.message": "You have made too many requests, please slow down.",
    "error.500.name": "Internal Server Error",
    "error.500.message": "Something went wrong on our end.",
    "error.503.name": "Service Unavailable",
    "error.503.message": "The service is temporarily unavailable.",
}


class CatalogTranslator:
    """Looks messages up in a flat key to string catalog.

    Missing keys come back unchanged, so a page for an unusual status code
    still renders and shows which key needs a translation.
    """

    def __init__(self, messages: dict[str, str] | None = None):
        self.messages = dict(DEFAULT_MESSAGES)
        if messages:
            self.messages.update(messages)

    def translate(self, key: str) -> str:
        return self.messages.get(key, key)

    @classmethod
    def from_file(cls, path: str | Path) -> "CatalogTranslator":
        """Load a catalog from YAML, merged over the English defaults.

        Nested mappings are flattened with dots, so ``error: {404: {name: ...}}``
        provides ``error.404.name``.

        Raises:
            ServFaultConfigError: If the file is missing or is not a mapping.
        """
        catalog_path = Path(path)
        try:
            with catalog_path.open("r") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ServFaultConfigError(
                f"Error loading translations from {catalog_path}: {str(e)}"
            ) from e

        if data is None:
            data = {}

        if not isinstance(data, dict):
            raise ServFaultConfigError(
                f"Invalid translation catalog in {catalog_path}. Expected a dictionary."
            )

        return cls(_flatten(data))


def _flatten(data: dict[Any, Any], prefix: str = "") -> dict[str, str]:
    messages = {}
    for key, value in data.items():
        full_key = f"{prefix}{key}"
        if isinstance(value, dict):
            messages.update(_flatten(value, f"{full_key}."))
        else:
            messages[full_key] = str(value)

    return messages
