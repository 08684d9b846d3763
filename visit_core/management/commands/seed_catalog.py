from django.core.management.base import BaseCommand
from django.db import transaction

from visit_core.models import Antibiotic, TestTemplate
from visit_core.reference_cache import invalidate

ANTIBIOTICS = [
    ("AMK", "Amikacin"),
    ("AMP", "Ampicillin"),
    ("CIP", "Ciprofloxacin"),
    ("CTX", "Cefotaxime"),
    ("GEN", "Gentamicin"),
    ("MEM", "Meropenem"),
    ("NIT", "Nitrofurantoin"),
]

TEMPLATES = [
    {
        "code": "CBC",
        "name": "Complete Blood Count",
        "category": "Haematology",
        "sample_type": "Whole blood (EDTA)",
        "report_type": "standard",
        "parameters": {
            "fields": [
                {"name": "Hemoglobin", "type": "number", "unit": "g/dL"},
                {"name": "Differential count", "type": "heading"},
                {"name": "WBC", "type": "number", "unit": "10^3/uL"},
                {"name": "Platelets", "type": "number", "unit": "10^3/uL"},
            ]
        },
    },
    {
        "code": "URC",
        "name": "Urine Culture & Sensitivity",
        "category": "Microbiology",
        "sample_type": "Urine",
        "report_type": "culture",
        "parameters": {},
    },
]


class Command(BaseCommand):
    help = "Create or update the starter test catalog and antibiotic list"

    @transaction.atomic
    def handle(self, *args, **options):
        antibiotic_ids = []
        for code, name in ANTIBIOTICS:
            obj, _ = Antibiotic.objects.update_or_create(code=code, defaults={"name": name})
            antibiotic_ids.append(obj.pk)

        for entry in TEMPLATES:
            defaults = {k: v for k, v in entry.items() if k != "code"}
            if entry["report_type"] == "culture":
                defaults["default_antibiotic_ids"] = antibiotic_ids
            _, created = TestTemplate.objects.update_or_create(code=entry["code"], defaults=defaults)
            self.stdout.write(f"{'created' if created else 'updated'}\t{entry['code']}")

        invalidate()
        self.stdout.write(
            self.style.SUCCESS(f"{len(TEMPLATES)} templates, {len(ANTIBIOTICS)} antibiotics")
        )
