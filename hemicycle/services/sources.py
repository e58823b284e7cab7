"""Templated source URLs. Every target is built from a known identifier."""

from __future__ import annotations

from urllib.parse import urljoin

from hemicycle.core.config import Settings
from hemicycle.core.constants import UrlParams, UrlPaths, WorkType


class SourceUrls:
    def __init__(self, base_url: str, hatvp_base_url: str, legislature: int) -> None:
        self.base_url = base_url
        self.hatvp_base_url = hatvp_base_url
        self._legislature = str(legislature)

    @classmethod
    def from_settings(cls, settings: Settings) -> SourceUrls:
        return cls(settings.BASE_URL, settings.HATVP_BASE_URL, settings.LEGISLATURE)

    def _assembly(self, path: str) -> str:
        return urljoin(self.base_url, path)

    def deputies_list(self) -> str:
        return self._assembly(UrlPaths.DEPUTIES_LIST)

    def deputy_info(self, deputy_id: str) -> str:
        return self._assembly(UrlPaths.DEPUTY_INFO.replace(UrlParams.DEPUTY_ID, deputy_id))

    def deputy_work(self, deputy_id: str, work_type: WorkType, offset: int) -> str:
        path = (
            UrlPaths.DEPUTY_WORK.replace(UrlParams.DEPUTY_ID, deputy_id)
            .replace(UrlParams.OFFSET, str(offset))
            .replace(UrlParams.WORK_TYPE, work_type.path)
        )
        return self._assembly(path)

    def ballots_list(self) -> str:
        return self._assembly(UrlPaths.BALLOTS_LIST.replace(UrlParams.LEGISLATURE, self._legislature))

    def ballot_detail(self, ballot_id: str) -> str:
        path = UrlPaths.BALLOT_DETAIL.replace(UrlParams.LEGISLATURE, self._legislature).replace(
            UrlParams.BALLOT_ID, ballot_id
        )
        return self._assembly(path)

    def declarant_index(self) -> str:
        return urljoin(self.hatvp_base_url, UrlPaths.HATVP_DEPUTIES_LIST)
