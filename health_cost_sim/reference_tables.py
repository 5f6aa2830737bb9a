"""
Reference tables consumed by the risk, claims and plan tier models.

All lookup data lives in one frozen ReferenceTables value. DEFAULT_TABLES is
built once at import time; every public operation accepts a `tables` argument
so callers and tests can inject substitutes (for example a cost-sharing table
read from a spreadsheet with load_cost_sharing_table).
"""

import logging
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple, Union

import pandas as pd

from .errors import ReferenceDataError

logger = logging.getLogger(__name__)


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class HealthStatus(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class MetalTier(str, Enum):
    CATASTROPHIC = "Catastrophic"
    BRONZE = "Bronze"
    SILVER = "Silver"
    GOLD = "Gold"
    PLATINUM = "Platinum"


# Tiers that take part in total-cost-of-care ranking, in tie-break order
RANKED_TIERS: Tuple[MetalTier, ...] = (
    MetalTier.BRONZE,
    MetalTier.SILVER,
    MetalTier.GOLD,
    MetalTier.PLATINUM,
)


class UtilizationScenario(str, Enum):
    MINIMAL = "minimal"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very-high"


class PrescriptionCount(str, Enum):
    NONE = "none"
    ONE_TO_THREE = "1-3"
    FOUR_OR_MORE = "4-or-more"


@dataclass(frozen=True)
class CostSharingStructure:
    """
    A plan tier's cost-sharing rules.

    Attributes:
        deductible: Annual deductible
        oop_maximum: Annual out-of-pocket maximum
        primary_care_copay: Copay per primary-care visit
        specialist_copay: Copay per specialist visit
        emergency_room_copay: Copay per ER visit
        generic_rx_copay: Copay per month of generic prescriptions
        brand_rx_copay: Copay per month of brand prescriptions
        urgent_care_copay: Copay per urgent-care visit
    """
    deductible: float
    oop_maximum: float
    primary_care_copay: float
    specialist_copay: float
    emergency_room_copay: float
    generic_rx_copay: float
    brand_rx_copay: float
    urgent_care_copay: float = 100.0


@dataclass(frozen=True)
class UtilizationPattern:
    """Annual service counts for one utilization scenario."""
    primary_care_visits: int
    specialist_visits: int
    er_visits: int
    urgent_care_visits: int
    hospital_admissions: int
    generic_rx_months: int
    brand_rx_months: int
    imaging_tests: int
    lab_tests: int


@dataclass(frozen=True)
class ClaimsMultipliers:
    claims: float
    size: float
    high_cost: float
    catastrophic: float


# (label, lowest age in bracket, factor); brackets are contiguous and ascending
AgeTable = Tuple[Tuple[str, int, float], ...]

AGE_RISK_FACTORS: AgeTable = (
    ("0-4", 0, 0.85),
    ("5-9", 5, 0.50),
    ("10-14", 10, 0.55),
    ("15-17", 15, 0.65),
    ("18-24", 18, 0.70),
    ("25-29", 25, 0.75),
    ("30-34", 30, 0.80),
    ("35-39", 35, 0.90),
    ("40-44", 40, 1.00),
    ("45-49", 45, 1.15),
    ("50-54", 50, 1.35),
    ("55-59", 55, 1.60),
    ("60-64", 60, 1.90),
    ("65-69", 65, 2.20),
    ("70-74", 70, 2.60),
    ("75-79", 75, 3.00),
    ("80-84", 80, 3.50),
    ("85+", 85, 4.00),
)

# Average annual medical cost before insurance, by age bracket
EXPECTED_UTILIZATION_BY_AGE: AgeTable = (
    ("0-4", 0, 3500),
    ("5-14", 5, 2200),
    ("15-17", 15, 2800),
    ("18-24", 18, 3000),
    ("25-29", 25, 3500),
    ("30-34", 30, 4200),
    ("35-44", 35, 5000),
    ("45-49", 45, 6500),
    ("50-54", 50, 8500),
    ("55-59", 55, 10500),
    ("60-64", 60, 13000),
    ("65-74", 65, 15000),
    ("75-84", 75, 20000),
    ("85+", 85, 25000),
)

# Gender rating is used for risk modelling only, never for premiums
GENDER_COST_FACTORS: Dict[Gender, Dict[str, float]] = {
    Gender.MALE: {"18-44": 0.85, "45-64": 1.05, "65+": 1.10},
    Gender.FEMALE: {"18-44": 1.15, "45-64": 0.95, "65+": 0.90},
    Gender.OTHER: {"18-44": 1.00, "45-64": 1.00, "65+": 1.00},
}

HEALTH_STATUS_RISK_FACTORS: Dict[HealthStatus, float] = {
    HealthStatus.EXCELLENT: 0.8,
    HealthStatus.GOOD: 1.0,
    HealthStatus.FAIR: 1.3,
    HealthStatus.POOR: 1.8,
}

# Simplified hierarchical condition categories (HCC); 1.0 = average risk
HCC_RISK_FACTORS: Dict[str, float] = {
    "healthy": 1.0,
    # low risk
    "hypertensionControlled": 1.15,
    "asthmaWellControlled": 1.20,
    "arthritis": 1.25,
    "anxiety": 1.20,
    "depression": 1.25,
    "hypothyroid": 1.10,
    # moderate risk
    "diabetesType2Controlled": 1.50,
    "copdModerate": 1.60,
    "atrialFibrillation": 1.55,
    "chronicKidneyDisease3": 1.70,
    "obesityMorbid": 1.40,
    "sleepApnea": 1.30,
    # high risk
    "diabetesWithComplications": 2.20,
    "heartFailure": 2.50,
    "coronaryArteryDisease": 2.30,
    "chronicKidneyDisease4": 2.80,
    "copdSevere": 2.40,
    "liverCirrhosis": 2.60,
    "rheumatoidArthritis": 2.10,
    "crohnsDisease": 2.00,
    # very high risk
    "cancerActive": 4.50,
    "strokeRecent": 3.80,
    "transplantRecipient": 4.20,
    "chronicKidneyDisease5": 5.50,
    "heartFailureAdvanced": 4.00,
    "multipleSclerosis": 3.60,
    "hivAIDS": 3.50,
    # catastrophic
    "cancerMetastatic": 8.00,
    "organFailureMultiple": 10.00,
    "hemophilia": 12.00,
    "cysticFibrosis": 15.00,
}

CLAIMS_HEALTH_MULTIPLIERS: Dict[HealthStatus, ClaimsMultipliers] = {
    HealthStatus.EXCELLENT: ClaimsMultipliers(claims=0.5, size=0.6, high_cost=0.3, catastrophic=0.5),
    HealthStatus.GOOD: ClaimsMultipliers(claims=0.8, size=0.9, high_cost=0.7, catastrophic=0.8),
    HealthStatus.FAIR: ClaimsMultipliers(claims=1.5, size=1.4, high_cost=2.0, catastrophic=1.8),
    HealthStatus.POOR: ClaimsMultipliers(claims=2.5, size=2.0, high_cost=4.0, catastrophic=3.5),
}

# Percentile multiples of the risk-adjusted mean (right-skewed, CV ~ 2.5)
COST_DISTRIBUTION_MULTIPLIERS: Dict[str, float] = {
    "p10": 0.10,
    "p25": 0.25,
    "p50": 0.60,
    "p75": 1.20,
    "p90": 2.50,
    "p95": 4.00,
    "p99": 10.00,
    "mean": 1.00,
}

EXPECTED_COST_HEALTH_MULTIPLIERS: Dict[HealthStatus, float] = {
    HealthStatus.EXCELLENT: 0.6,
    HealthStatus.GOOD: 1.0,
    HealthStatus.FAIR: 1.5,
    HealthStatus.POOR: 2.5,
}

# Additional annual cost per chronic condition (TCC model, lower-case keys)
CHRONIC_CONDITION_COSTS: Dict[str, float] = {
    "diabetes": 8000,
    "hypertension": 2000,
    "asthma": 3000,
    "heartdisease": 12000,
    "cancer": 30000,
    "copd": 10000,
    "arthritis": 4000,
    "mentalhealth": 5000,
    "chronickidneydisease": 20000,
    "stroke": 15000,
    "alzheimers": 18000,
    "autoimmune": 15000,
}

ACTUARIAL_VALUES: Dict[MetalTier, float] = {
    MetalTier.CATASTROPHIC: 0.60,
    MetalTier.BRONZE: 0.60,
    MetalTier.SILVER: 0.70,
    MetalTier.GOLD: 0.80,
    MetalTier.PLATINUM: 0.90,
}

TYPICAL_COST_SHARING: Dict[MetalTier, CostSharingStructure] = {
    MetalTier.CATASTROPHIC: CostSharingStructure(
        deductible=9450, oop_maximum=9450,
        primary_care_copay=0, specialist_copay=0, emergency_room_copay=0,
        generic_rx_copay=15, brand_rx_copay=50,
    ),
    MetalTier.BRONZE: CostSharingStructure(
        deductible=7000, oop_maximum=9200,
        primary_care_copay=50, specialist_copay=80, emergency_room_copay=500,
        generic_rx_copay=20, brand_rx_copay=60,
    ),
    MetalTier.SILVER: CostSharingStructure(
        deductible=4500, oop_maximum=9200,
        primary_care_copay=35, specialist_copay=65, emergency_room_copay=400,
        generic_rx_copay=15, brand_rx_copay=45,
    ),
    MetalTier.GOLD: CostSharingStructure(
        deductible=1500, oop_maximum=8000,
        primary_care_copay=25, specialist_copay=45, emergency_room_copay=300,
        generic_rx_copay=10, brand_rx_copay=35,
    ),
    MetalTier.PLATINUM: CostSharingStructure(
        deductible=500, oop_maximum=5000,
        primary_care_copay=15, specialist_copay=30, emergency_room_copay=200,
        generic_rx_copay=5, brand_rx_copay=25,
    ),
}

UTILIZATION_PATTERNS: Dict[UtilizationScenario, UtilizationPattern] = {
    UtilizationScenario.MINIMAL: UtilizationPattern(
        primary_care_visits=1, specialist_visits=0, er_visits=0, urgent_care_visits=0,
        hospital_admissions=0, generic_rx_months=0, brand_rx_months=0,
        imaging_tests=0, lab_tests=1,
    ),
    UtilizationScenario.LOW: UtilizationPattern(
        primary_care_visits=2, specialist_visits=1, er_visits=0, urgent_care_visits=1,
        hospital_admissions=0, generic_rx_months=3, brand_rx_months=0,
        imaging_tests=1, lab_tests=2,
    ),
    UtilizationScenario.MEDIUM: UtilizationPattern(
        primary_care_visits=4, specialist_visits=3, er_visits=0, urgent_care_visits=2,
        hospital_admissions=0, generic_rx_months=6, brand_rx_months=3,
        imaging_tests=2, lab_tests=4,
    ),
    UtilizationScenario.HIGH: UtilizationPattern(
        primary_care_visits=6, specialist_visits=8, er_visits=1, urgent_care_visits=3,
        hospital_admissions=0, generic_rx_months=12, brand_rx_months=6,
        imaging_tests=4, lab_tests=8,
    ),
    UtilizationScenario.VERY_HIGH: UtilizationPattern(
        primary_care_visits=12, specialist_visits=16, er_visits=2, urgent_care_visits=4,
        hospital_admissions=1, generic_rx_months=12, brand_rx_months=12,
        imaging_tests=8, lab_tests=12,
    ),
}


def normalize_condition_code(code: str) -> str:
    """Lower-case a condition code and drop separators ('Heart_Failure' -> 'heartfailure')."""
    return "".join(ch for ch in code.strip().lower() if ch.isalnum())


def lookup_age_bracket(table: AgeTable, age: float) -> Tuple[str, float]:
    """
    Find the (label, value) of the bracket containing age.

    Ages below the first bracket use the first one and ages past the last
    lower bound use the last one; values are never extrapolated.
    """
    label, _, value = table[0]
    for bracket_label, lower, bracket_value in table:
        if age >= lower:
            label, value = bracket_label, bracket_value
        else:
            break
    return label, value


@dataclass(frozen=True)
class ReferenceTables:
    """
    Immutable bundle of every lookup table the engine reads.

    Construct once (DEFAULT_TABLES) and pass into the model functions; use
    dataclasses.replace() or load_cost_sharing_table() to derive variants.
    Every mapping is copied into a read-only view on construction, so the
    shared defaults cannot be edited in place.
    """
    age_risk_factors: AgeTable = AGE_RISK_FACTORS
    gender_cost_factors: Mapping[Gender, Mapping[str, float]] = field(default_factory=lambda: dict(GENDER_COST_FACTORS))
    health_status_risk_factors: Mapping[HealthStatus, float] = field(default_factory=lambda: dict(HEALTH_STATUS_RISK_FACTORS))
    hcc_risk_factors: Mapping[str, float] = field(default_factory=lambda: dict(HCC_RISK_FACTORS))
    unknown_condition_factor: float = 1.5
    secondary_condition_weight: float = 0.5
    claims_health_multipliers: Mapping[HealthStatus, ClaimsMultipliers] = field(default_factory=lambda: dict(CLAIMS_HEALTH_MULTIPLIERS))
    cost_distribution_multipliers: Mapping[str, float] = field(default_factory=lambda: dict(COST_DISTRIBUTION_MULTIPLIERS))
    expected_utilization_by_age: AgeTable = EXPECTED_UTILIZATION_BY_AGE
    expected_cost_health_multipliers: Mapping[HealthStatus, float] = field(default_factory=lambda: dict(EXPECTED_COST_HEALTH_MULTIPLIERS))
    chronic_condition_costs: Mapping[str, float] = field(default_factory=lambda: dict(CHRONIC_CONDITION_COSTS))
    multi_condition_cost_factor: float = 0.85
    actuarial_values: Mapping[MetalTier, float] = field(default_factory=lambda: dict(ACTUARIAL_VALUES))
    cost_sharing: Mapping[MetalTier, CostSharingStructure] = field(default_factory=lambda: dict(TYPICAL_COST_SHARING))
    utilization_patterns: Mapping[UtilizationScenario, UtilizationPattern] = field(default_factory=lambda: dict(UTILIZATION_PATTERNS))

    def __post_init__(self):
        for table_field in fields(self):
            table = getattr(self, table_field.name)
            if not isinstance(table, Mapping):
                continue
            if table_field.name == "hcc_risk_factors":
                # Condition codes are matched case-insensitively
                table = {normalize_condition_code(k): v for k, v in table.items()}
            frozen = {k: MappingProxyType(dict(v)) if isinstance(v, Mapping) else v for k, v in table.items()}
            object.__setattr__(self, table_field.name, MappingProxyType(frozen))

    def condition_factor(self, code: str) -> float:
        return self.hcc_risk_factors.get(normalize_condition_code(code), self.unknown_condition_factor)


DEFAULT_TABLES = ReferenceTables()

COST_SHARING_COLUMNS = [
    "metal_tier",
    "deductible",
    "oop_maximum",
    "primary_care_copay",
    "specialist_copay",
    "emergency_room_copay",
    "generic_rx_copay",
    "brand_rx_copay",
]


def load_cost_sharing_table(path: Union[str, Path],
                            base: Optional[ReferenceTables] = None) -> ReferenceTables:
    """
    Read per-tier cost-sharing parameters from a CSV or Excel sheet.

    One row per metal tier. Required columns are listed in COST_SHARING_COLUMNS;
    `urgent_care_copay` and `actuarial_value` are optional. Tiers missing from
    the sheet keep the values in `base`.

    Args:
        path: .csv, .xlsx or .xls file
        base: Tables to start from (defaults to DEFAULT_TABLES)

    Returns:
        A new ReferenceTables with the sheet's tiers applied
    """
    base = base or DEFAULT_TABLES
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Cost-sharing table not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".csv":
        raw = pd.read_csv(path)
    elif suffix in (".xlsx", ".xls"):
        raw = pd.read_excel(path)
    else:
        raise ReferenceDataError(f"Unsupported cost-sharing table format: {suffix}")

    raw.columns = [str(c).strip().lower() for c in raw.columns]
    missing = [c for c in COST_SHARING_COLUMNS if c not in raw.columns]
    if missing:
        raise ReferenceDataError(f"Cost-sharing table missing columns: {missing}. Found: {list(raw.columns)}")

    tiers_by_name = {t.value.lower(): t for t in MetalTier}
    cost_sharing = dict(base.cost_sharing)
    actuarial_values = dict(base.actuarial_values)

    for row_idx, row in raw.iterrows():
        tier_name = str(row["metal_tier"]).strip().lower()
        if tier_name not in tiers_by_name:
            raise ReferenceDataError(f"Row {row_idx}: unknown metal tier {row['metal_tier']!r}")
        tier = tiers_by_name[tier_name]

        numeric = pd.to_numeric(row[COST_SHARING_COLUMNS[1:]], errors="coerce")
        if numeric.isna().any():
            bad = list(numeric[numeric.isna()].index)
            raise ReferenceDataError(f"Row {row_idx} ({tier.value}): non-numeric values in {bad}")
        if (numeric < 0).any():
            raise ReferenceDataError(f"Row {row_idx} ({tier.value}): negative cost-sharing amounts")

        kwargs = {col: float(numeric[col]) for col in COST_SHARING_COLUMNS[1:]}
        if "urgent_care_copay" in raw.columns and pd.notna(row["urgent_care_copay"]):
            kwargs["urgent_care_copay"] = float(row["urgent_care_copay"])
        if kwargs["oop_maximum"] < kwargs["deductible"]:
            logger.warning("%s: OOP maximum %.2f is below deductible %.2f",
                           tier.value, kwargs["oop_maximum"], kwargs["deductible"])
        cost_sharing[tier] = CostSharingStructure(**kwargs)

        if "actuarial_value" in raw.columns and pd.notna(row["actuarial_value"]):
            value = float(row["actuarial_value"])
            if not 0.0 <= value <= 1.0:
                raise ReferenceDataError(f"Row {row_idx} ({tier.value}): actuarial value {value} outside [0, 1]")
            actuarial_values[tier] = value

    logger.info("Loaded cost sharing for %d tiers from %s", len(raw), path)
    return replace(base, cost_sharing=cost_sharing, actuarial_values=actuarial_values)
