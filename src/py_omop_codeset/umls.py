# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.
from typing import List, Optional

import requests
from rich.console import Console

from .config import settings
from .exceptions import InvalidInputError, UpstreamFailureError
from .models import UMLSSearchResult

console = Console()

NO_RESULTS_UI = "NONE"


class UMLSClient:
    """
    Thin client for the UTS REST search endpoint, returning source-vocabulary codes.
    """
    SEARCH_PATH = "/search/current"

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self.api_key = api_key or settings.umls_api_key
        self.base_url = (base_url or settings.umls_base_url).rstrip("/")
        self.timeout = timeout or settings.umls_timeout

    @property
    def search_url(self) -> str:
        return f"{self.base_url}{self.SEARCH_PATH}"

    def search(self, term, vocabularies: Optional[List[str]] = None, page_size: int = 25) -> List[UMLSSearchResult]:
        if not isinstance(term, str) or len(term.strip()) < settings.min_search_term_length:
            raise InvalidInputError(
                f"Search term must be at least {settings.min_search_term_length} characters"
            )
        if not self.api_key:
            raise UpstreamFailureError("UMLS API key is not configured")

        params = {
            "string": term.strip(),
            "apiKey": self.api_key,
            "pageSize": page_size,
            "returnIdType": "code",
        }
        if vocabularies:
            params["sabs"] = ",".join(vocabularies)

        console.log(f"Searching UMLS for [bold cyan]{term.strip()}[/bold cyan]...")
        try:
            response = requests.get(self.search_url, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise UpstreamFailureError(f"UMLS search failed: {e}") from e

        results = []
        for item in data.get("result", {}).get("results", []):
            if item.get("ui") == NO_RESULTS_UI:
                continue
            results.append(UMLSSearchResult(
                code=item["ui"],
                vocabulary=item.get("rootSource", ""),
                term=item.get("name", ""),
                source_concept=item.get("uri"),
            ))
        console.log(f"UMLS returned {len(results)} codes.")
        return results
