"""
Example of declaring encrypted and hashed fields on Pydantic models.

This example builds the field registry from ProtectedModel classes and
shows what the storage engine holds versus what the application reads.
"""

import json
import os
from typing import Annotated, Optional

from indaleko_fieldcrypt import (
    Encrypted,
    FieldCipher,
    FieldCryptConfig,
    FieldCryptService,
    FieldRegistry,
    Hashed,
    ProtectedModel,
)
from indaleko_fieldcrypt.db import MemoryEngine, RelationDef


class Patient(ProtectedModel):
    """
    Patient record with protected fields.

    The national id is hashed so it can be looked up but never read back;
    the name and notes are encrypted and decrypted transparently.
    """

    id: Optional[int] = None
    name: Annotated[str, Encrypted(strict=True)]
    national_id: Annotated[str, Hashed()]
    notes: Annotated[Optional[str], Encrypted()] = None
    visits: list["Visit"] = []


class Visit(ProtectedModel):
    """Visit record; the diagnosis is encrypted."""

    id: Optional[int] = None
    reason: str
    diagnosis: Annotated[str, Encrypted()]
    patient: Optional[Patient] = None


Patient.model_rebuild()


def main() -> None:
    """Example usage of protected models."""
    os.environ["INDALEKO_MODE"] = "DEV"
    os.environ["INDALEKO_ENCRYPTION_KEY"] = "example-encryption-key-for-demonstration"
    os.environ["INDALEKO_HASH_KEY"] = "example-hash-key-for-demonstration"
    FieldCryptConfig.initialize()

    engine = MemoryEngine({
        "Patient": {"visits": RelationDef("Visit", "patient", many=True)},
        "Visit": {"patient": RelationDef("Patient", "visits", many=False)},
    })
    registry = FieldRegistry.from_models(Patient, Visit)
    service = FieldCryptService(engine, registry, FieldCipher.from_config())

    created = service.model("Patient").create(
        data={
            "name": "Jane Roe",
            "national_id": " AB-123 456 ",
            "visits": {"create": {"reason": "check-up", "diagnosis": "healthy"}},
        },
        include={"visits": True},
    )
    print("What the application sees:")
    print(json.dumps(created, indent=2))

    print("\nWhat the storage engine holds:")
    print(json.dumps(engine.raw_rows("Patient"), indent=2))
    print(json.dumps(engine.raw_rows("Visit"), indent=2))

    found = service.model("Patient").find_unique(where={"national_id": "ab-123 456"}, include={"visits": True})
    patient = Patient.from_result(found)
    print(f"\nFound patient {patient.name} with {len(patient.visits)} visit(s)")


if __name__ == "__main__":
    main()
