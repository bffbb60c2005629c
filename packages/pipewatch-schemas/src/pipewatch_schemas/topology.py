"""Stage-to-step topology schemas and the bundled default pipeline."""

from __future__ import annotations

from pydantic import Field, model_validator

from pipewatch_schemas.base import FrozenSchema
from pipewatch_schemas.primitives import StageId, StepId

UNCLASSIFIED_STEP_ID = "unclassified"
UNCLASSIFIED_STEP_NAME = "Unclassified"


class PipelineStep(FrozenSchema):
    """A human-meaningful grouping of one or more stages."""

    step_id: StepId = Field(..., description="Step identifier")
    name: str = Field(..., min_length=1, description="Display name")
    description: str | None = Field(None, description="What the step does")
    stage_ids: list[StageId] = Field(
        ..., min_length=1, description="Stages in display order"
    )
    order: int = Field(..., ge=0, description="Display order among steps")

    @model_validator(mode="after")
    def _validate_stage_ids(self) -> PipelineStep:
        if len(set(self.stage_ids)) != len(self.stage_ids):
            raise ValueError("stage_ids must be unique within a step")
        return self


class PipelineTopology(FrozenSchema):
    """Static mapping from stages to steps, loaded once per process."""

    steps: list[PipelineStep] = Field(..., min_length=1, description="Steps")
    stage_names: dict[StageId, str] = Field(
        default_factory=dict, description="Display names keyed by stage id"
    )

    @model_validator(mode="after")
    def _validate_steps(self) -> PipelineTopology:
        step_ids = [step.step_id for step in self.steps]
        if len(set(step_ids)) != len(step_ids):
            raise ValueError("step_id values must be unique")
        if UNCLASSIFIED_STEP_ID in step_ids:
            raise ValueError(f"step_id {UNCLASSIFIED_STEP_ID!r} is reserved")
        seen: set[str] = set()
        for step in self.steps:
            for stage_id in step.stage_ids:
                if stage_id in seen:
                    raise ValueError(
                        f"stage {stage_id!r} is assigned to more than one step"
                    )
                seen.add(stage_id)
        return self

    def ordered_steps(self) -> list[PipelineStep]:
        """Return steps sorted by display order.

        Returns:
            list[PipelineStep]: Steps in display order.
        """
        return sorted(self.steps, key=lambda step: step.order)

    def get_step(self, step_id: str) -> PipelineStep | None:
        """Return the step with the given id, if configured."""
        for step in self.steps:
            if step.step_id == step_id:
                return step
        return None

    def step_for_stage(self, stage_id: str) -> PipelineStep | None:
        """Return the step a stage belongs to, or None when unclassified."""
        for step in self.steps:
            if stage_id in step.stage_ids:
                return step
        return None

    def stage_ids(self) -> list[str]:
        """Return every configured stage in step order.

        Returns:
            list[str]: Stage identifiers.
        """
        return [
            stage_id for step in self.ordered_steps() for stage_id in step.stage_ids
        ]

    def display_name(self, stage_id: str) -> str:
        """Return the display name for a stage, falling back to its id."""
        return self.stage_names.get(stage_id, stage_id)


def default_topology() -> PipelineTopology:
    """Build the bundled topology of the report-processing pipeline.

    Returns:
        PipelineTopology: Preprocessing, data extraction and finalize steps.
    """
    return PipelineTopology(
        steps=[
            PipelineStep(
                step_id="preprocessing",
                name="Preprocessing",
                description="Initial document processing and preparation",
                stage_ids=[
                    "nlmParsePDF",
                    "nlmExtractTables",
                    "precheck",
                    "parsePdf",
                    "doclingParsePDF",
                ],
                order=1,
            ),
            PipelineStep(
                step_id="data-extraction",
                name="AI Data Extraction",
                description="AI-powered data extraction and analysis",
                stage_ids=[
                    "guessWikidata",
                    "diffReportingPeriods",
                    "extractEmissions",
                    "followUpScope12",
                    "followUpScope3",
                    "followUpBiogenic",
                    "followUpEconomy",
                    "followUpGoals",
                    "followUpInitiatives",
                    "followUpFiscalYear",
                    "followUpCompanyTags",
                    "followUpBaseYear",
                    "followUpIndustryGics",
                    "diffIndustry",
                    "diffGoals",
                    "diffInitiatives",
                    "diffBaseYear",
                    "checkDB",
                ],
                order=2,
            ),
            PipelineStep(
                step_id="finalize",
                name="Finalize",
                description="Final processing and data storage",
                stage_ids=[
                    "sendCompanyLink",
                    "saveToAPI",
                    "wikipediaUpload",
                    "diffTags",
                    "indexMarkdown",
                ],
                order=3,
            ),
        ],
        stage_names={
            "nlmParsePDF": "PDF parsing (NLM)",
            "nlmExtractTables": "Table extraction",
            "precheck": "Precheck",
            "parsePdf": "PDF parsing",
            "doclingParsePDF": "PDF parsing (Docling)",
            "guessWikidata": "Wikidata",
            "diffReportingPeriods": "Reporting periods",
            "extractEmissions": "Emissions",
            "followUpScope12": "Follow-up scope 1 & 2",
            "followUpScope3": "Follow-up scope 3",
            "followUpBiogenic": "Follow-up biogenic",
            "followUpEconomy": "Follow-up economy",
            "followUpGoals": "Follow-up goals",
            "followUpInitiatives": "Follow-up initiatives",
            "followUpFiscalYear": "Follow-up fiscal year",
            "followUpCompanyTags": "Follow-up company tags",
            "followUpBaseYear": "Follow-up base year",
            "followUpIndustryGics": "Follow-up industry GICS",
            "diffIndustry": "Industry",
            "diffGoals": "Climate goals",
            "diffInitiatives": "Initiatives",
            "diffBaseYear": "Base year",
            "checkDB": "DB check",
            "sendCompanyLink": "Review",
            "saveToAPI": "API storage",
            "wikipediaUpload": "Wikipedia",
            "diffTags": "Tags",
            "indexMarkdown": "Markdown",
        },
    )
