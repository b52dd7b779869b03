"""Deterministic demo catalogue for Study Sphere."""

from __future__ import annotations

from .resources_dao import RESOURCES_COLLECTION, create_resource
from .store import DocumentStore, now_ms

_DAY_MS = 24 * 60 * 60 * 1000

DEMO_RESOURCES = [
    {
        "title": "Linear Algebra Lecture Notes",
        "description": "Vectors, matrices, eigenvalues and a worked set of practice problems.",
        "type": "PDF",
        "url": "https://drive.google.com/file/d/1linalgNotesDemo/view?usp=sharing",
        "category": "Mathematics",
    },
    {
        "title": "Thermodynamics in 20 Minutes",
        "description": "A fast visual walkthrough of the laws of thermodynamics.",
        "type": "VIDEO",
        "url": "https://www.youtube.com/watch?v=8N1BxHgsoOw",
        "category": "Physics",
    },
    {
        "title": "Cold War Timeline",
        "description": "Key events from 1947 to 1991 with short summaries.",
        "type": "PDF",
        "url": "https://pdfobject.com/pdf/sample.pdf",
        "category": "History",
    },
    {
        "title": "Organic Chemistry Reaction Map",
        "description": "One-page map of common reactions and their reagents.",
        "type": "PDF",
        "url": "https://pdfobject.com/pdf/sample.pdf",
        "category": "Chemistry",
    },
]


def seed(store: DocumentStore) -> int:
    """Insert the demo catalogue when the collection is empty; return inserts."""

    if store.list(RESOURCES_COLLECTION):
        return 0
    base = now_ms()
    for offset, resource in enumerate(DEMO_RESOURCES):
        create_resource(store, added_at=base - offset * _DAY_MS, **resource)
    return len(DEMO_RESOURCES)


if __name__ == "__main__":
    import os

    demo_store = DocumentStore(os.getenv("DATABASE_URL", "sqlite:///study_sphere.db"))
    demo_store.initialize()
    print(f"Seeded {seed(demo_store)} resources.")
    demo_store.close()
