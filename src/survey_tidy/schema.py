import re
from pathlib import Path
from typing import Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from survey_tidy.exceptions import ConfigError

FieldKind = Literal["int", "category", "text", "date"]

# ASCII digits with an optional minus sign. No underscores, no other scripts.
INTEGER = re.compile(r"-?[0-9]+")


class FieldSpec(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)
    name: str
    kind: FieldKind = "text"
    minimum: Optional[int] = None
    maximum: Optional[int] = None
    categories: List[str] = Field(default_factory=list)
    pattern: Optional[str] = None

    def in_domain(self, value: str) -> bool:
        """Does a raw, stripped string belong to this field's domain?"""
        if self.kind == "int":
            if not INTEGER.fullmatch(value):
                return False
            number = int(value)
            if self.minimum is not None and number < self.minimum:
                return False
            if self.maximum is not None and number > self.maximum:
                return False
            return True
        if self.kind == "category":
            return value in self.categories
        if self.pattern:
            return re.fullmatch(self.pattern, value) is not None
        return True


class RecoveryRule(BaseModel):
    """
    Maps an observed scalar piece count onto a re-alignment strategy.
    short_by_one: `optional_field` was never collected, everything from it onward
    sits one slot to the left and `anchor_field` must recover `anchor_code`.
    """
    model_config = ConfigDict(extra="ignore", frozen=True)
    observed_count: int
    strategy: Literal["aligned", "short_by_one"]
    optional_field: Optional[str] = None
    anchor_field: Optional[str] = None
    anchor_code: Optional[str] = None
    note: str = ""


def _default_occasion_fields() -> List[FieldSpec]:
    # Observed bounds from the 2019 collection: every item uses the 0-6 scale.
    items = [FieldSpec(name=f"Q{i}", kind="int", minimum=0, maximum=6) for i in range(1, 17)]
    return items + [
        FieldSpec(name="Age", kind="int", minimum=18, maximum=99),
        FieldSpec(name="Sex", kind="category", categories=["Female", "Male", "Other"]),
        FieldSpec(
            name="Race",
            kind="category",
            categories=["White", "Black", "Asian", "Hispanic", "Multiracial", "Other"],
        ),
        FieldSpec(name="Politics", kind="int", minimum=1, maximum=7),
        FieldSpec(
            name="Religion",
            kind="category",
            categories=[
                "Christian", "Catholic", "Jewish", "Muslim", "Hindu",
                "Buddhist", "Atheist", "Agnostic", "Other",
            ],
        ),
        FieldSpec(name="Zip", kind="text", pattern=r"[0-9]{5}"),
        FieldSpec(name="Condition", kind="category", categories=["A1", "B1"]),
    ]


def _default_continuation_fields() -> List[FieldSpec]:
    return [
        FieldSpec(
            name="Continue",
            kind="category",
            categories=["Yes", "No", "Not sure", "Yes, but not right now"],
        ),
        FieldSpec(name="Enjoyment", kind="int", minimum=0, maximum=6),
        FieldSpec(name="Difficulty", kind="int", minimum=0, maximum=6),
        FieldSpec(name="Usefulness", kind="int", minimum=0, maximum=6),
        FieldSpec(name="Recommend", kind="category", categories=["Yes", "No"]),
        FieldSpec(name="Revisit", kind="category", categories=["Yes", "No"]),
    ]


def _default_recovery_rules() -> List[RecoveryRule]:
    return [
        RecoveryRule(observed_count=23, strategy="aligned", note="every field present"),
        RecoveryRule(
            observed_count=22,
            strategy="short_by_one",
            optional_field="Religion",
            anchor_field="Condition",
            anchor_code="B1",
            note="B1 participants were never shown the religion item",
        ),
    ]


class SurveySchema(BaseModel):
    model_config = ConfigDict(extra="ignore")
    version: str = "2019.1"
    occasions: List[str] = Field(default_factory=lambda: ["pre", "post"])
    occasion_fields: List[FieldSpec] = Field(default_factory=_default_occasion_fields)
    continuation_fields: List[FieldSpec] = Field(default_factory=_default_continuation_fields)
    date_field: FieldSpec = Field(default_factory=lambda: FieldSpec(name="Date", kind="date"))
    text_field: str = "Text"
    missing_tokens: List[str] = Field(default_factory=lambda: ["", "(not asked)"])
    consistency_fields: List[str] = Field(
        default_factory=lambda: ["Age", "Sex", "Race", "Politics", "Religion", "Zip"]
    )
    recovery_rules: List[RecoveryRule] = Field(default_factory=_default_recovery_rules)

    @model_validator(mode="after")
    def _check_references(self) -> "SurveySchema":
        names = set(self.occasion_names)
        for field_name in self.consistency_fields:
            if field_name not in names:
                raise ValueError(f"consistency field '{field_name}' is not an occasion field")
        counts = [r.observed_count for r in self.recovery_rules]
        if len(counts) != len(set(counts)):
            raise ValueError("recovery rules must have distinct observed counts")
        for rule in self.recovery_rules:
            expected = self.full_count if rule.strategy == "aligned" else self.full_count - 1
            if rule.observed_count != expected:
                raise ValueError(f"{rule.strategy} rule must observe {expected} fields, got {rule.observed_count}")
            if rule.strategy != "short_by_one":
                continue
            for ref in (rule.optional_field, rule.anchor_field):
                if ref not in names:
                    raise ValueError(f"recovery rule references unknown field '{ref}'")
            if self.occasion_names.index(rule.optional_field) >= self.occasion_names.index(rule.anchor_field):
                raise ValueError("optional field must precede the anchor field")
        return self

    @property
    def occasion_names(self) -> List[str]:
        return [f.name for f in self.occasion_fields]

    @property
    def continuation_names(self) -> List[str]:
        return [f.name for f in self.continuation_fields]

    @property
    def full_count(self) -> int:
        return len(self.occasion_fields)

    def specs(self) -> Dict[str, FieldSpec]:
        return {f.name: f for f in self.occasion_fields}

    def continuation_specs(self) -> Dict[str, FieldSpec]:
        return {f.name: f for f in self.continuation_fields}

    def rule_for(self, observed_count: int) -> Optional[RecoveryRule]:
        for rule in self.recovery_rules:
            if rule.observed_count == observed_count:
                return rule
        return None

    def short_rule(self) -> Optional[RecoveryRule]:
        for rule in self.recovery_rules:
            if rule.strategy == "short_by_one":
                return rule
        return None

    def is_missing_token(self, value: str) -> bool:
        return value.strip() in self.missing_tokens


def load_schema(path: Optional[Path] = None) -> SurveySchema:
    """
    Load the survey schema from YAML with safe defaults.
    Keys absent from the file keep their code defaults.
    """
    file_path = path or Path("config/schema.yaml")
    if not file_path.exists():
        return SurveySchema()

    with open(file_path, "r") as f:
        data = yaml.safe_load(f) or {}

    try:
        return SurveySchema.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid survey schema in {file_path}: {e}") from e
