"""Pytest configuration and fixtures."""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Callable

import pytest

from clearverify.models import EligibilityQuery, PatientInfo
from clearverify.providers import ProviderDirectory
from clearverify.signing import HMACSigner

PROVIDERS_YAML = (
    Path(__file__).parent.parent / "clearverify" / "providers" / "providers.yaml"
)

# Active subscriber with deductible, out-of-pocket and a restorative (25)
# coinsurance of 20% patient share.
ACTIVE_271_BODY = [
    "BHT*0022*11*123456789*20240115*1200",
    "HL*1**20*1",
    "NM1*PR*2*FLORIDA BLUE*****PI*BCBSFL",
    "HL*2*1*21*1",
    "NM1*1P*2*CLEARVERIFY*****XX*1234567890",
    "HL*3*2*22*0",
    "TRN*2*123456789*CLEARVERIFY",
    "NM1*IL*1*SMITH*JOHN****MI*W123456789",
    "DMG*D8*19800515",
    "DTP*346*D8*20240101",
    "EB*1*IND*30",
    "EB*C*IND*30***23*1500",
    "EB*C*IND*30***29*100",
    "EB*C*FAM*30***23*3000",
    "EB*G*IND*30***23*5000",
    "EB*G*IND*30***29*3500",
    "EB*A*IND*25*****0.2",
]


def _isa(control_number: str) -> str:
    elements = [
        "ISA", "00", " " * 10, "00", " " * 10,
        "ZZ", "BCBSFL".ljust(15), "ZZ", "CLEARVERIFY".ljust(15),
        "240115", "1200", "^", "00501", control_number, "0", "T", ":",
    ]
    return "*".join(elements) + "~"


def build_271(body: list[str] | None = None, control_number: str = "000000001") -> str:
    """Wrap transaction segments in a valid ISA/GS/ST envelope."""
    body = ACTIVE_271_BODY if body is None else body
    transaction = ["ST*271*0001*005010X279A1", *body]
    transaction.append(f"SE*{len(transaction) + 1}*0001")
    segments = [
        "GS*HB*BCBSFL*CLEARVERIFY*20240115*1200*1*X*005010X279A1",
        *transaction,
        "GE*1*1",
        f"IEA*1*{control_number}",
    ]
    return _isa(control_number) + "".join(f"{segment}~" for segment in segments)


@pytest.fixture
def directory() -> ProviderDirectory:
    """Directory loaded from the bundled provider table."""
    return ProviderDirectory.from_yaml(PROVIDERS_YAML)


@pytest.fixture
def secrets() -> dict[str, str]:
    """Credentials for every provider used in adapter tests."""
    return {
        "BCBS_FLORIDA_CLIENT_ID": "fl-client",
        "BCBS_FLORIDA_CLIENT_SECRET": "fl-secret",
        "BCBS_CLIENT_ID": "bcbs-client",
        "BCBS_CLIENT_SECRET": "bcbs-secret",
        "CHANGE_HEALTHCARE_CLIENT_ID": "chc-client",
        "CHANGE_HEALTHCARE_CLIENT_SECRET": "chc-secret",
        "UNITED_API_KEY": "uhc-key",
        "WAYSTAR_API_KEY": "waystar-key",
        "ELIGIBLE_API_KEY": "eligible-key",
        "DELTA_DENTAL_USERNAME": "dd-user",
        "DELTA_DENTAL_PASSWORD": "dd-pass",
        "AVAILITY_USERNAME": "av-user",
        "AVAILITY_PASSWORD": "av-pass",
    }


@pytest.fixture
def patient() -> PatientInfo:
    return PatientInfo(first_name="John", last_name="Smith", dob=date(1980, 5, 15))


@pytest.fixture
def sample_query(patient: PatientInfo) -> EligibilityQuery:
    """Composite filling verification against Florida Blue."""
    return EligibilityQuery(
        payer_id="bcbs_florida",
        member_id="W123456789",
        procedure_code="D2391",
        patient=patient,
    )


@pytest.fixture
def make_query(patient: PatientInfo) -> Callable[..., EligibilityQuery]:
    def _make(payer_id: str, procedure_code: str = "D2391", **kwargs) -> EligibilityQuery:
        return EligibilityQuery(
            payer_id=payer_id,
            member_id=kwargs.pop("member_id", "W123456789"),
            procedure_code=procedure_code,
            patient=patient,
            **kwargs,
        )

    return _make


@pytest.fixture
def signer() -> HMACSigner:
    return HMACSigner("test-signing-key")


@pytest.fixture
def make_271() -> Callable[..., str]:
    """Builder for 271 messages with correct envelope counts."""
    return build_271


@pytest.fixture
def active_271_body() -> list[str]:
    return list(ACTIVE_271_BODY)
