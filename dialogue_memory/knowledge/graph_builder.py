"""Domain knowledge for the narrated valuation model.

Model inputs, market factors, algorithms and outputs of the valuation, with
the influence edges between them.
"""

from __future__ import annotations

import copy

from dialogue_memory.knowledge.concept_graph import ConceptGraph
from dialogue_memory.models import ConceptEdge, ConceptNode

VALUATION_NODES = [
    # Model inputs
    ConceptNode(
        id="starlink-penetration",
        label="Starlink Penetration Rate",
        type="input",
        domain="earth-operations",
        synonyms=["penetration", "starlink penetration", "penetration rate", "market penetration"],
        metadata={"greek_type": "Delta", "sensitivity": 50, "unit": "percentage"},
    ),
    ConceptNode(
        id="discount-rate",
        label="Discount Rate",
        type="input",
        domain="financial",
        synonyms=["discount rate", "wacc", "discount", "rate"],
        metadata={"greek_type": "Rho", "sensitivity": -80, "unit": "percentage"},
    ),
    ConceptNode(
        id="launch-volume",
        label="Launch Volume",
        type="input",
        domain="earth-operations",
        synonyms=["launch volume", "launches", "launch count", "launch cadence"],
        metadata={"greek_type": "Delta", "sensitivity": 2.5, "unit": "launches/year"},
    ),
    # Market factors
    ConceptNode(
        id="tech-sector-growth",
        label="Tech Sector Growth",
        type="factor",
        domain="market",
        synonyms=["tech sector", "tech growth", "technology sector"],
        metadata={"exposure": 0.75, "beta": 0.75},
    ),
    # Algorithms
    ConceptNode(
        id="wrights-law",
        label="Wright's Law (Learning Curve)",
        type="algorithm",
        domain="financial",
        synonyms=["wrights law", "learning curve", "cost reduction", "wright's law"],
        description="Cost reduction based on cumulative production",
    ),
    # Outputs
    ConceptNode(
        id="starlink-revenue",
        label="Starlink Revenue",
        type="output",
        domain="earth-operations",
        synonyms=["starlink revenue", "revenue", "starlink income"],
    ),
    ConceptNode(
        id="total-valuation",
        label="Total Enterprise Value",
        type="output",
        domain="financial",
        synonyms=["valuation", "enterprise value", "total value", "ev"],
    ),
]

VALUATION_EDGES = [
    ConceptEdge(
        source_id="starlink-penetration",
        target_id="starlink-revenue",
        type="influences",
        strength=0.9,
        confidence=0.95,
        metadata={"impact_magnitude": 50, "impact_type": "direct"},
    ),
    ConceptEdge(
        source_id="tech-sector-growth",
        target_id="starlink-penetration",
        type="influences",
        strength=0.75,
        confidence=0.8,
        metadata={"correlation": 0.75, "impact_type": "indirect"},
    ),
    ConceptEdge(
        source_id="discount-rate",
        target_id="total-valuation",
        type="affects",
        strength=0.9,
        confidence=1.0,
        metadata={"impact_magnitude": -80, "impact_type": "direct"},
    ),
    ConceptEdge(
        source_id="wrights-law",
        target_id="launch-volume",
        type="applies-to",
        strength=0.95,
        confidence=1.0,
        metadata={"description": "Launch volume enables cost reduction via Wright's Law"},
    ),
]


def build_valuation_graph() -> ConceptGraph:
    """Fresh graph of the valuation domain."""
    return ConceptGraph.from_parts(copy.deepcopy(VALUATION_NODES), copy.deepcopy(VALUATION_EDGES))
