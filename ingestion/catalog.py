"""
Per-source connectors and the registry factory.

Every catalog source gets exactly one connector. Base URLs, download URLs
and API keys can be overridden per source through the environment
(DATASET_<KEY>_BASE_URL, DATASET_<KEY>_DOWNLOAD_URL, DATASET_<KEY>_API_KEY);
otherwise the built-in defaults below apply.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from core.config import Settings
from ingestion.base import DatasetConnector
from ingestion.connectors.archive import ArchiveRecordsConnector
from ingestion.connectors.bulk_file import BulkFileConfig, BulkFileConnector
from ingestion.connectors.paged_api import OFFSET_MODE, PagedApiConfig, PagedApiConnector
from ingestion.connectors.responses import dig
from ingestion.connectors.static import StaticConnector
from ingestion.sources import DatasetSourceName

ConnectorRegistry = Dict[DatasetSourceName, DatasetConnector]


def _as_int(value: Any) -> Optional[int]:
    """Upstream counters arrive as ints or numeric strings"""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


# ============================================================================
# Paged API sources
# ============================================================================

class DailyMedConnector(PagedApiConnector):
    def __init__(self, config: Settings):
        super().__init__(DatasetSourceName.DAILYMED, PagedApiConfig(
            base_url=config.get_source_base_url("dailymed", "https://dailymed.nlm.nih.gov/dailymed/services/v2/"),
            resource_path="drugnames.json",
            page_param="page",
            page_size_param="pagesize",
            default_page_size=100,
        ))

    def parse_items(self, body: Any) -> List[Any]:
        drugs = dig(body, "data")
        if isinstance(drugs, dict):
            drugs = drugs.get("drug")
        return [
            {
                "name": drug.get("drug_name"),
                "setId": drug.get("setid"),
                "updated": drug.get("last_updated"),
            }
            for drug in _as_list(drugs)
            if isinstance(drug, dict)
        ]

    def has_more(self, body: Any, page_items: List[Any]) -> bool:
        total_pages = _as_int(dig(body, "metadata", "total_pages"))
        current_page = _as_int(dig(body, "metadata", "current_page"))
        if total_pages is not None and current_page is not None:
            return current_page < total_pages
        return super().has_more(body, page_items)


class ClinicalTrialsConnector(PagedApiConnector):
    def __init__(self, config: Settings):
        super().__init__(DatasetSourceName.CLINICAL_TRIALS, PagedApiConfig(
            base_url=config.get_source_base_url("clinicaltrials", "https://clinicaltrials.gov/api/"),
            resource_path="query/full_studies",
            page_param="page",
            page_size_param="pageSize",
            default_page_size=50,
            static_params={"expr": 'AREA[LocationCountry]"United States"'},
        ))

    def parse_items(self, body: Any) -> List[Any]:
        items = []
        for study in _as_list(dig(body, "FullStudiesResponse", "FullStudies")):
            identification = dig(study, "Study", "ProtocolSection", "IdentificationModule") or {}
            items.append({
                "nctId": identification.get("NCTId"),
                "title": identification.get("OfficialTitle") or identification.get("BriefTitle"),
                "status": dig(study, "Study", "ProtocolSection", "StatusModule", "OverallStatus"),
                "conditions": dig(
                    study, "Study", "ProtocolSection", "ConditionsModule", "ConditionList", "Condition"
                ) or [],
            })
        return items

    def has_more(self, body: Any, page_items: List[Any]) -> bool:
        total = _as_int(dig(body, "FullStudiesResponse", "NStudiesFound")) or 0
        returned = _as_int(dig(body, "FullStudiesResponse", "NStudiesReturned")) or 0
        min_rank = _as_int(dig(body, "FullStudiesResponse", "MinRank")) or 0
        return returned > 0 and min_rank + returned <= total


class OpenFdaStyleConnector(PagedApiConnector):
    """api.fda.gov endpoints: skip/limit offsets with totals under meta.results"""

    def __init__(
        self,
        source: DatasetSourceName,
        config: Settings,
        source_key: str,
        resource_path: str,
        with_api_key: bool = False
    ):
        super().__init__(source, PagedApiConfig(
            base_url=config.get_source_base_url(source_key, "https://api.fda.gov/"),
            resource_path=resource_path,
            page_param="skip",
            page_size_param="limit",
            default_page_size=100,
            mode=OFFSET_MODE,
            api_key_header="X-API-KEY" if with_api_key else None,
            api_key=config.get_source_api_key(source_key) if with_api_key else None,
        ))

    def parse_items(self, body: Any) -> List[Any]:
        return _as_list(dig(body, "results"))

    def has_more(self, body: Any, page_items: List[Any]) -> bool:
        total = _as_int(dig(body, "meta", "results", "total")) or 0
        skip = _as_int(dig(body, "meta", "results", "skip")) or 0
        limit = _as_int(dig(body, "meta", "results", "limit")) or 0
        return skip + limit < total


class MedlinePlusConnector(PagedApiConnector):
    def __init__(self, config: Settings):
        super().__init__(DatasetSourceName.MEDLINEPLUS, PagedApiConfig(
            base_url=config.get_source_base_url("medlineplus", "https://wsearch.nlm.nih.gov/ws/"),
            resource_path="search",
            page_param="page",
            page_size_param="max",
            default_page_size=100,
            static_params={"db": "healthTopics", "term": "cancer"},
        ))

    def parse_items(self, body: Any) -> List[Any]:
        # A single hit comes back as an object rather than a list
        return _as_list(dig(body, "list", "record"))


class PubMedCentralConnector(PagedApiConnector):
    def __init__(self, config: Settings):
        super().__init__(DatasetSourceName.PUBMED_CENTRAL, PagedApiConfig(
            base_url=config.get_source_base_url("pubmed", "https://eutils.ncbi.nlm.nih.gov/entrez/eutils/"),
            resource_path="esearch.fcgi",
            page_param="retstart",
            page_size_param="retmax",
            default_page_size=100,
            mode=OFFSET_MODE,
            static_params={"db": "pmc", "term": "cancer", "retmode": "json"},
        ))

    def parse_items(self, body: Any) -> List[Any]:
        return _as_list(dig(body, "esearchresult", "idlist"))

    def has_more(self, body: Any, page_items: List[Any]) -> bool:
        count = _as_int(dig(body, "esearchresult", "count"))
        retstart = _as_int(dig(body, "esearchresult", "retstart"))
        retmax = _as_int(dig(body, "esearchresult", "retmax"))
        if count is None or retstart is None or retmax is None:
            return super().has_more(body, page_items)
        return retstart + retmax < count


class UspstfConnector(PagedApiConnector):
    def __init__(self, config: Settings):
        super().__init__(DatasetSourceName.USPSTF, PagedApiConfig(
            base_url=config.get_source_base_url("uspstf", "https://www.uspreventiveservicestaskforce.org/"),
            resource_path="api/recommendations",
            page_param="page",
            page_size_param="pageSize",
            default_page_size=50,
        ))

    def parse_items(self, body: Any) -> List[Any]:
        return _as_list(dig(body, "data"))

    def has_more(self, body: Any, page_items: List[Any]) -> bool:
        page = _as_int(dig(body, "pagination", "page"))
        total_pages = _as_int(dig(body, "pagination", "totalPages"))
        if page is None or total_pages is None:
            return False
        return page < total_pages


class CdcGuidelinesConnector(PagedApiConnector):
    def __init__(self, config: Settings):
        super().__init__(DatasetSourceName.CDC_GUIDELINES, PagedApiConfig(
            base_url=config.get_source_base_url("cdc", "https://www.cdc.gov/"),
            resource_path="api/v2/resources",
            page_param="page",
            page_size_param="pageSize",
            default_page_size=100,
        ))

    def parse_items(self, body: Any) -> List[Any]:
        return _as_list(dig(body, "results"))


class NhanesConnector(PagedApiConnector):
    def __init__(self, config: Settings):
        super().__init__(DatasetSourceName.NHANES, PagedApiConfig(
            base_url=config.get_source_base_url("nhanes", "https://healthdata.gov/api/"),
            resource_path="views/7pwj-59pg/rows.json",
            page_param="page",
            page_size_param="pageSize",
            default_page_size=100,
        ))

    def parse_items(self, body: Any) -> List[Any]:
        return _as_list(dig(body, "data"))


# ============================================================================
# Bulk file sources
# ============================================================================

BULK_DOWNLOADS = {
    DatasetSourceName.CMS_PUF: ("cms_puf", "https://download.cms.gov/data/public-use-files.zip"),
    DatasetSourceName.NPPES: ("nppes", "https://download.cms.gov/nppes/NPI_Files.html"),
    DatasetSourceName.SYNTHEA: (
        "synthea",
        "https://synthetichealth.github.io/synthea-sample-data/downloads/synthea_sample_data_fhir_102.zip",
    ),
}


class OrangeBookConnector(ArchiveRecordsConnector):
    def __init__(self, config: Settings):
        super().__init__(
            DatasetSourceName.ORANGE_BOOK,
            BulkFileConfig(
                download_url=config.get_source_download_url(
                    "orangebook",
                    "https://download.fda.gov/drugsatfda_docs/OrangeBook/zip/Products.zip"
                )
            ),
            member_suffix=".tsv",
            delimiter="\t",
        )


# ============================================================================
# Static sources
# ============================================================================

STATIC_MESSAGES = {
    DatasetSourceName.DATA_INGESTION: (
        "dataingestion",
        "Internal ingestion orchestrations are handled via this module. "
        "Trigger POST /api/datasets/{source}/ingest to capture new snapshots.",
    ),
    DatasetSourceName.FIRESCRAPE_TOOL: (
        "firescrapetool",
        "FireScrape tool results are streamed separately. "
        "Provide DATASET_FIRESCRAPETOOL_DOWNLOAD_URL to persist crawled artifacts.",
    ),
    DatasetSourceName.STATPEARLS: (
        "statpearls",
        "StatPearls content requires institutional access. "
        "Provide DATASET_STATPEARLS_DOWNLOAD_URL to enable ingestion.",
    ),
    DatasetSourceName.SEER: (
        "seer",
        "SEER data requires subscription. Upload exports to object storage "
        "and set DATASET_SEER_DOWNLOAD_URL to ingest.",
    ),
    DatasetSourceName.INTERNATIONAL_REGISTRIES: (
        "internationalregistries",
        "International registry ingestion requires custom connectors. "
        "Configure DATASET_INTERNATIONALREGISTRIES_DOWNLOAD_URL to supply curated exports.",
    ),
    DatasetSourceName.CHEXPERT_SPLITS: (
        "chexpertsplits",
        "CheXpert splits are distributed under research agreements. Upload JSON "
        "manifests to storage and configure DATASET_CHEXPERTSPLITS_DOWNLOAD_URL.",
    ),
    DatasetSourceName.MIMIC_SPLITS: (
        "mimicsplits",
        "MIMIC derived splits require protected data access. "
        "Provide secure download URL via DATASET_MIMICSPLITS_DOWNLOAD_URL.",
    ),
    DatasetSourceName.RID_COVID: (
        "ridcovid",
        "RID-COVID artifacts are hosted externally. "
        "Configure DATASET_RIDCOVID_DOWNLOAD_URL to enable ingestion.",
    ),
    DatasetSourceName.RJUA_QA: (
        "rjuaqa",
        "RJUA-QA dataset ingestion expects pre-signed URLs provided through DATASET_RJUAQA_DOWNLOAD_URL.",
    ),
    DatasetSourceName.DDXPLUS: (
        "ddxplus",
        "DDXPlus dataset requires approval. Supply dataset artifact via DATASET_DDXPLUS_DOWNLOAD_URL.",
    ),
    DatasetSourceName.LUNA16: (
        "luna16",
        "LUNA16 dataset ingestion expects manual upload. "
        "Point DATASET_LUNA16_DOWNLOAD_URL to a prepared archive.",
    ),
    DatasetSourceName.MIMIC_IV: (
        "mimic_iv",
        "MIMIC-IV is restricted. Configure DATASET_MIMIC_IV_DOWNLOAD_URL for approved exports.",
    ),
    DatasetSourceName.EICU_CRD: (
        "eicu_crd",
        "eICU-CRD requires credentialed access. Configure DATASET_EICU_CRD_DOWNLOAD_URL to ingest snapshots.",
    ),
}


def static_or_download(source: DatasetSourceName, source_key: str, message: str, config: Settings) -> DatasetConnector:
    """Credential-gated sources become plain downloads once an URL is configured"""
    download_url = config.get_source_download_url(source_key, "")
    if download_url:
        return BulkFileConnector(source, BulkFileConfig(download_url=download_url))

    return StaticConnector(source, lambda: {
        "message": message,
        "generatedAt": datetime.now(timezone.utc).isoformat(),
    })


# ============================================================================
# Registry
# ============================================================================

def build_connector_registry(config: Settings) -> ConnectorRegistry:
    """Build one connector per catalog source; call once at startup"""
    registry: ConnectorRegistry = {
        DatasetSourceName.DAILYMED: DailyMedConnector(config),
        DatasetSourceName.CLINICAL_TRIALS: ClinicalTrialsConnector(config),
        DatasetSourceName.ORANGE_BOOK: OrangeBookConnector(config),
        DatasetSourceName.OPENFDA: OpenFdaStyleConnector(
            DatasetSourceName.OPENFDA, config, "openfda", "drug/event.json", with_api_key=True
        ),
        DatasetSourceName.FAERS: OpenFdaStyleConnector(
            DatasetSourceName.FAERS, config, "faers", "drug/event.json"
        ),
        DatasetSourceName.NIH_SAFETY: OpenFdaStyleConnector(
            DatasetSourceName.NIH_SAFETY, config, "nihsafety", "drug/label.json"
        ),
        DatasetSourceName.MEDLINEPLUS: MedlinePlusConnector(config),
        DatasetSourceName.PUBMED_CENTRAL: PubMedCentralConnector(config),
        DatasetSourceName.USPSTF: UspstfConnector(config),
        DatasetSourceName.CDC_GUIDELINES: CdcGuidelinesConnector(config),
        DatasetSourceName.NHANES: NhanesConnector(config),
    }

    for source, (source_key, default_url) in BULK_DOWNLOADS.items():
        registry[source] = BulkFileConnector(source, BulkFileConfig(
            download_url=config.get_source_download_url(source_key, default_url)
        ))

    for source, (source_key, message) in STATIC_MESSAGES.items():
        registry[source] = static_or_download(source, source_key, message, config)

    return registry
