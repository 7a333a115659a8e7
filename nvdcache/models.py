"""Pydantic models for the NVD JSON 1.1 feed format.

Field names follow Python conventions; the NVD spellings
(``CVE_data_meta``, ``problemtype``, ``refsource`` …) are accepted as
aliases.  Unknown keys are ignored so upstream additions don't break
parsing.
"""

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _NvdModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CveMeta(_NvdModel):
    id: str = Field(alias="ID", min_length=1)
    assigner: str = Field(default="", alias="ASSIGNER")


class ProblemTypeData(_NvdModel):
    description: list[dict[str, Any]] = Field(default_factory=list)


class ProblemType(_NvdModel):
    problem_type_data: list[ProblemTypeData] = Field(default_factory=list, alias="problemtype_data")


class ReferenceData(_NvdModel):
    url: str
    name: str = ""
    ref_source: str = Field(default="", alias="refsource")
    tags: list[Any] = Field(default_factory=list)


class References(_NvdModel):
    reference_data: list[ReferenceData] = Field(default_factory=list)


class DescriptionData(_NvdModel):
    lang: str = ""
    value: str = ""


class Description(_NvdModel):
    description_data: list[DescriptionData] = Field(default_factory=list)


class Cve(_NvdModel):
    """The ``cve`` object of a feed item; this is what the store persists."""

    data_type: str = ""
    data_format: str = ""
    data_version: str = ""
    cve_data_meta: CveMeta = Field(alias="CVE_data_meta")
    problem_type: ProblemType = Field(default_factory=ProblemType, alias="problemtype")
    references: References = Field(default_factory=References)
    description: Description = Field(default_factory=Description)

    def weaknesses(self) -> list[str]:
        """Return the CWE identifiers listed under ``problemtype``."""
        out: list[str] = []
        for data in self.problem_type.problem_type_data:
            for desc in data.description:
                value = desc.get("value") if isinstance(desc, dict) else None
                if value and value not in out:
                    out.append(str(value))
        return out


class CveItem(_NvdModel):
    cve: Cve
    published_date: str | None = Field(default=None, alias="publishedDate")
    last_modified_date: str | None = Field(default=None, alias="lastModifiedDate")


class FeedHeader(_NvdModel):
    """Top level of a feed document; items are validated one by one."""

    cve_data_type: str = Field(default="", alias="CVE_data_type")
    cve_data_format: str = Field(default="", alias="CVE_data_format")
    cve_data_version: str = Field(default="", alias="CVE_data_version")
    cve_data_number_of_cves: str | None = Field(default=None, alias="CVE_data_numberOfCVEs")
    cve_data_timestamp: str | None = Field(default=None, alias="CVE_data_timestamp")
    cve_items: list[dict[str, Any]] = Field(alias="CVE_Items")


@dataclass(frozen=True)
class VulnerabilityRecord:
    """One CVE ready to be upserted into the store.

    Attributes:
        cve_id: Stable identifier (e.g. ``CVE-2021-43437``).
        description: Searchable description text.
        raw: The original ``cve`` object serialized as compact JSON.
        cve: Validated model of ``raw``.
    """

    cve_id: str
    description: str
    raw: str
    cve: Cve

    @property
    def assigner(self) -> str:
        return self.cve.cve_data_meta.assigner
