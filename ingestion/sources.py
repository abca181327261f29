"""
Closed catalog of dataset sources the service knows how to ingest.
"""

import enum
import re

from core.exceptions import SourceNotFoundError


class DatasetSourceName(str, enum.Enum):
    """Human-readable names of every known upstream source"""
    DATA_INGESTION = "Data Ingestion"
    FIRESCRAPE_TOOL = "FireScrape Tool"
    DAILYMED = "DailyMed"
    ORANGE_BOOK = "Orange Book"
    CDC_GUIDELINES = "CDC/NIH Guidelines"
    NIH_SAFETY = "NIH Drug-Safety"
    STATPEARLS = "StatPearls"
    USPSTF = "USPSTF Recommendations"
    CLINICAL_TRIALS = "ClinicalTrials.gov"
    MEDLINEPLUS = "MedlinePlus"
    MIMIC_IV = "MIMIC-IV"
    EICU_CRD = "eICU-CRD"
    FAERS = "FAERS"
    CMS_PUF = "CMS Public Use Files"
    OPENFDA = "OpenFDA"
    SEER = "SEER Program"
    NHANES = "NHANES"
    NPPES = "NPPES"
    PUBMED_CENTRAL = "PubMed Central"
    SYNTHEA = "Synthea"
    INTERNATIONAL_REGISTRIES = "International Registries"
    CHEXPERT_SPLITS = "SyntheticallyEnhanced: CheXpert"
    MIMIC_SPLITS = "SyntheticallyEnhanced: MIMIC"
    RID_COVID = "RID-COVID"
    RJUA_QA = "RJUA-QA"
    DDXPLUS = "DDXPlus Dataset"
    LUNA16 = "LUNA16"


def resolve_source(value: str) -> DatasetSourceName:
    """Match a source name case-insensitively against the catalog"""
    wanted = (value or "").strip().lower()
    for source in DatasetSourceName:
        if source.value.lower() == wanted:
            return source

    raise SourceNotFoundError(
        f"Unknown dataset source: {value}",
        context={"source": value}
    )


def source_slug(source: DatasetSourceName) -> str:
    """Filesystem-safe slug, e.g. "CDC/NIH Guidelines" -> "cdc-nih-guidelines" """
    return re.sub(r"[^a-z0-9]+", "-", source.value.lower())
