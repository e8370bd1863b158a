"""
MedDRA lookup for free-text symptom names.

Read-only table keyed by lower-cased symptom text.  A miss is not an
error; callers simply leave the coded fields out.
"""

from __future__ import annotations

from typing import Dict, NamedTuple, Optional


class MeddraTerm(NamedTuple):
    code: str
    term: str
    soc: str


MEDDRA_MAP: Dict[str, MeddraTerm] = {
    "headache": MeddraTerm("10019211", "Headache", "Nervous system disorders"),
    "migraine": MeddraTerm("10027599", "Migraine", "Nervous system disorders"),
    "nausea": MeddraTerm("10028813", "Nausea", "Gastrointestinal disorders"),
    "vomiting": MeddraTerm("10047700", "Vomiting", "Gastrointestinal disorders"),
    "dizziness": MeddraTerm("10013573", "Dizziness", "Nervous system disorders"),
    "fatigue": MeddraTerm("10016256", "Fatigue", "General disorders"),
    "rash": MeddraTerm("10037844", "Rash", "Skin and subcutaneous tissue disorders"),
    "itching": MeddraTerm("10037087", "Pruritus", "Skin and subcutaneous tissue disorders"),
    "joint pain": MeddraTerm("10023222", "Arthralgia", "Musculoskeletal disorders"),
    "muscle pain": MeddraTerm("10028411", "Myalgia", "Musculoskeletal disorders"),
    "insomnia": MeddraTerm("10022437", "Insomnia", "Psychiatric disorders"),
    "anxiety": MeddraTerm("10002855", "Anxiety", "Psychiatric disorders"),
    "diarrhea": MeddraTerm("10012735", "Diarrhoea", "Gastrointestinal disorders"),
    "constipation": MeddraTerm("10010774", "Constipation", "Gastrointestinal disorders"),
    "stomach pain": MeddraTerm("10000081", "Abdominal pain", "Gastrointestinal disorders"),
    "cough": MeddraTerm("10011224", "Cough", "Respiratory disorders"),
    "shortness of breath": MeddraTerm("10013968", "Dyspnoea", "Respiratory disorders"),
    "swelling": MeddraTerm("10042674", "Swelling", "General disorders"),
    "chest pain": MeddraTerm("10008479", "Chest pain", "General disorders"),
    "palpitations": MeddraTerm("10033557", "Palpitations", "Cardiac disorders"),
    "blurred vision": MeddraTerm("10047513", "Vision blurred", "Eye disorders"),
    "dry mouth": MeddraTerm("10013781", "Dry mouth", "Gastrointestinal disorders"),
    "weight gain": MeddraTerm("10047896", "Weight increased", "Investigations"),
    "hair loss": MeddraTerm("10001760", "Alopecia", "Skin and subcutaneous tissue disorders"),
    "brain fog": MeddraTerm("10010300", "Cognitive disorder", "Nervous system disorders"),
}


def lookup_term(symptom: Optional[str]) -> Optional[MeddraTerm]:
    if not symptom:
        return None
    return MEDDRA_MAP.get(symptom.strip().lower())
