"""Detection of diagram entities that match Common Data Model standard tables.

A diagram entity called ``Customer`` or ``Contacts`` usually describes a
table the platform already ships. Detection does not change the plan; each
match becomes a warning finding recommending reuse of the standard table.
"""

import difflib
import re
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional

from erd2dataverse.config.logging import get_logger
from erd2dataverse.ir.diagram import DiagramGraph, EntityDef
from erd2dataverse.ir.findings import Finding

logger = get_logger(__name__)

MatchType = Literal["exact", "alias", "fuzzy"]

EXACT_CONFIDENCE = 0.95
ALIAS_CONFIDENCE = 0.85
FUZZY_THRESHOLD = 0.7


@dataclass(frozen=True)
class CdmEntity:
    """A standard table and the names it commonly goes by."""

    logical_name: str
    display_name: str
    description: str
    key_attributes: List[str]
    aliases: List[str] = field(default_factory=list)


STANDARD_ENTITIES: List[CdmEntity] = [
    CdmEntity(
        "account",
        "Account",
        "Business that represents a customer or potential customer.",
        ["accountid", "name", "primarycontactid", "accountnumber", "emailaddress1", "telephone1"],
        ["Customer", "Company", "Organization", "Client"],
    ),
    CdmEntity(
        "contact",
        "Contact",
        "Person with whom a business unit has a relationship.",
        ["contactid", "fullname", "firstname", "lastname", "emailaddress1", "telephone1"],
        ["Person", "Individual"],
    ),
    CdmEntity(
        "lead",
        "Lead",
        "Prospect or potential customer for products or services.",
        ["leadid", "fullname", "companyname", "emailaddress1"],
        ["Prospect"],
    ),
    CdmEntity(
        "opportunity",
        "Opportunity",
        "Potential revenue-generating event.",
        ["opportunityid", "name", "estimatedvalue", "estimatedclosedate"],
        ["Deal", "Sale"],
    ),
    CdmEntity(
        "product",
        "Product",
        "Information about products and their pricing.",
        ["productid", "name", "productnumber", "price", "description"],
        ["Item", "Article"],
    ),
    CdmEntity(
        "salesorder",
        "Order",
        "Quote that has been accepted.",
        ["salesorderid", "name", "ordernumber", "totalamount", "customerid"],
        ["Sales Order", "Purchase Order"],
    ),
    CdmEntity(
        "invoice",
        "Invoice",
        "Order that has been billed.",
        ["invoiceid", "name", "invoicenumber", "totalamount", "customerid"],
        ["Bill"],
    ),
    CdmEntity(
        "quote",
        "Quote",
        "Formal offer for products or services.",
        ["quoteid", "name", "quotenumber", "totalamount", "customerid"],
        ["Offer", "Proposal"],
    ),
    CdmEntity(
        "incident",
        "Case",
        "Service request case associated with a contract.",
        ["incidentid", "title", "ticketnumber", "customerid", "prioritycode"],
        ["Ticket", "Support Case", "Issue"],
    ),
]


@dataclass
class CdmMatch:
    """A diagram entity recognised as a standard table."""

    entity: str
    cdm: CdmEntity
    match_type: MatchType
    confidence: float


@dataclass
class CdmReport:
    matches: List[CdmMatch] = field(default_factory=list)
    custom_entities: List[str] = field(default_factory=list)

    @property
    def confidence_level(self) -> str:
        if not self.matches:
            return "none"
        average = sum(m.confidence for m in self.matches) / len(self.matches)
        if average >= 0.9:
            return "high"
        if average >= FUZZY_THRESHOLD:
            return "medium"
        return "low"

    def summary(self) -> Dict[str, int]:
        counts = {"exact": 0, "alias": 0, "fuzzy": 0}
        for m in self.matches:
            counts[m.match_type] += 1
        counts["custom"] = len(self.custom_entities)
        return counts


def normalize_name(name: str) -> str:
    """Lower-case, drop a plural ``s`` and every non-alphanumeric character."""
    name = name.strip().lower()
    if name.endswith("s") and not name.endswith("ss"):
        name = name[:-1]
    return re.sub(r"[^a-z0-9]", "", name)


def _similarity(a: str, b: str) -> float:
    return difflib.SequenceMatcher(None, a, b).ratio()


def _attribute_similarity(entity: EntityDef, cdm: CdmEntity) -> float:
    if not entity.fields:
        return 0.0
    wanted = [normalize_name(a) for a in cdm.key_attributes]
    matches = 0
    for f in entity.fields:
        name = normalize_name(f.name)
        if any(name == attr or _similarity(name, attr) >= 0.8 for attr in wanted):
            matches += 1
    return matches / max(len(entity.fields), len(wanted))


def match_entity(entity: EntityDef, registry: Optional[List[CdmEntity]] = None) -> Optional[CdmMatch]:
    """
    Match one diagram entity against the standard tables.

    Exact name matches win over alias matches; otherwise the best fuzzy
    score (40% name similarity, 60% attribute overlap) must exceed the
    threshold.
    """
    registry = registry if registry is not None else STANDARD_ENTITIES
    names = {normalize_name(entity.name), normalize_name(entity.display_name)}
    names.discard("")
    if not names:
        return None

    for cdm in registry:
        if names & {normalize_name(cdm.logical_name), normalize_name(cdm.display_name)}:
            return CdmMatch(entity.name, cdm, "exact", EXACT_CONFIDENCE)
    for cdm in registry:
        if names & {normalize_name(alias) for alias in cdm.aliases}:
            return CdmMatch(entity.name, cdm, "alias", ALIAS_CONFIDENCE)

    best: Optional[CdmMatch] = None
    for cdm in registry:
        name_score = max(_similarity(n, normalize_name(cdm.logical_name)) for n in names)
        score = round(min(0.4 * name_score + 0.6 * _attribute_similarity(entity, cdm), 1.0), 2)
        if score > FUZZY_THRESHOLD and (best is None or score > best.confidence):
            best = CdmMatch(entity.name, cdm, "fuzzy", score)
    return best


def detect_cdm_entities(graph: DiagramGraph, registry: Optional[List[CdmEntity]] = None) -> CdmReport:
    """Classify every declared entity as a standard-table match or a custom entity."""
    report = CdmReport()
    for entity in graph.entities:
        if entity.synthesized:
            continue
        found = match_entity(entity, registry)
        if found is None:
            report.custom_entities.append(entity.name)
        else:
            report.matches.append(found)
    if report.matches:
        logger.info(
            f"Standard table matches: {len(report.matches)} of {len(report.matches) + len(report.custom_entities)} "
            f"entities ({report.confidence_level} confidence)"
        )
    return report


def cdm_findings(report: CdmReport) -> List[Finding]:
    findings = []
    for m in report.matches:
        findings.append(
            Finding(
                stage="generation",
                code="CDM_MATCH",
                severity="warning",
                location=m.entity,
                message=(
                    f"Entity '{m.entity}' looks like the standard table '{m.cdm.display_name}' "
                    f"({m.cdm.logical_name}); consider reusing it instead of creating a custom table"
                ),
                details={
                    "cdm_entity": m.cdm.logical_name,
                    "match_type": m.match_type,
                    "confidence": m.confidence,
                },
            )
        )
    return findings
