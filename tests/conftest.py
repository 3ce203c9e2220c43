"""
Shared test fixtures.

Provides a synthetic one-page invoice layout, labeled sample sets built
from it and a classifier trained on those samples. Components are built
with explicit parameters so the tests do not depend on settings.yaml.
"""

import random
from decimal import Decimal
from typing import List, Optional

import pytest

from invoice_fields.domain.field_type import FieldType
from invoice_fields.features.extractor import FeatureExtractor
from invoice_fields.model_inference.classifier import FieldClassifier
from invoice_fields.training.samples import TrainingSample, TrainingSet, featurize


PAGE_WIDTH = 595.0
PAGE_HEIGHT = 842.0
LINE_HEIGHT = 12.0

ISSUERS = [
    ("Muster GmbH", "Hauptstraße 12", "10115", "Berlin"),
    ("Beispiel Handel AG", "Bahnhofstr. 5", "80331", "München"),
    ("Nordlicht Technik GmbH", "Lindenweg 3", "20095", "Hamburg"),
    ("Rheinland Service KG", "Marktplatz 7", "50667", "Köln"),
]

# (template, label, x, y, width)
INVOICE_LAYOUT = [
    ("{name}", FieldType.ISSUER_ADDRESS, 50, 40, 180),
    ("{street}", FieldType.ISSUER_ADDRESS, 50, 54, 160),
    ("{postal_code} {city}", FieldType.ISSUER_ADDRESS, 50, 68, 120),
    ("Rechnungsnummer: RE-2025-{number:03d}", FieldType.INVOICE_NUMBER, 380, 160, 170),
    ("Rechnungsdatum: {day:02d}.01.2025", FieldType.INVOICE_DATE, 380, 176, 150),
    ("Pos. 1 Beratungsleistung {hours} Std.", FieldType.NONE, 50, 300, 300),
    ("Nettobetrag: {net} EUR", FieldType.NET_TOTAL, 380, 600, 160),
    ("MwSt 19%: {vat} EUR", FieldType.VAT_TOTAL, 380, 616, 160),
    ("Gesamtbetrag: {gross} EUR", FieldType.GROSS_TOTAL, 380, 632, 170),
    ("Vielen Dank für Ihren Auftrag", FieldType.NONE, 50, 780, 220),
]


def german_amount(value: Decimal) -> str:
    """1234.5 -> '1.234,50'"""
    return f"{value:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")


def synthetic_document(
    number: int = 1,
    seed: int = 0,
    document_id: Optional[str] = None
) -> List[TrainingSample]:
    """Labeled samples for one invoice page with slightly jittered positions."""
    rng = random.Random(seed)
    name, street, postal_code, city = ISSUERS[number % len(ISSUERS)]

    net = Decimal(rng.randint(100, 9000)) + Decimal(rng.randint(0, 99)) / 100
    vat = (net * Decimal("0.19")).quantize(Decimal("0.01"))
    values = {
        'name': name,
        'street': street,
        'postal_code': postal_code,
        'city': city,
        'number': number,
        'day': rng.randint(1, 28),
        'hours': rng.randint(1, 40),
        'net': german_amount(net),
        'vat': german_amount(vat),
        'gross': german_amount(net + vat),
    }
    document_id = document_id or f"doc-{number:03d}"

    samples = []
    for line_index, (template, label, x, y, width) in enumerate(INVOICE_LAYOUT):
        samples.append(TrainingSample(
            text=template.format(**values),
            label=label,
            line_index=line_index,
            page_number=1,
            x=x + rng.uniform(-3.0, 3.0),
            y=y + rng.uniform(-1.5, 1.5),
            width=width + rng.uniform(-10.0, 10.0),
            height=LINE_HEIGHT,
            page_width=PAGE_WIDTH,
            page_height=PAGE_HEIGHT,
            document_id=document_id,
        ))
    return samples


def synthetic_set(numbers, seed_offset: int = 0, name: str = "synthetic") -> TrainingSet:
    samples = []
    for number in numbers:
        samples.extend(synthetic_document(number, seed=seed_offset + number))
    return TrainingSet(samples, name=name)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture(scope="session")
def extractor() -> FeatureExtractor:
    return FeatureExtractor(
        header_threshold=0.15,
        footer_threshold=0.85,
        alignment_tolerance=2.0,
        isolation_factor=2.0,
        max_text_length=4000,
    )


@pytest.fixture(scope="session")
def training_set() -> TrainingSet:
    """30 invoices, 300 samples."""
    return synthetic_set(range(1, 31), name="train")


@pytest.fixture(scope="session")
def holdout_set() -> TrainingSet:
    """10 invoices disjoint from the training set."""
    return synthetic_set(range(101, 111), seed_offset=1000, name="holdout")


@pytest.fixture(scope="session")
def trained_model(training_set, extractor) -> FieldClassifier:
    X, labels, _ = featurize(training_set, extractor)
    return FieldClassifier.fit(X, labels, model_version="test-1.0", max_iterations=1000)


@pytest.fixture
def make_document():
    """Factory for one synthetic invoice page."""
    return synthetic_document
