"""
External JSON shapes: the batch report returned by ingestion and the episode
representation consumed by the web layer.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ErrorRecord(BaseModel):
    """A rejected row. Row numbers are 1-based source positions."""

    model_config = ConfigDict(frozen=True)

    row: int = Field(..., ge=1, description="1-based row position in the source file")
    error: str
    data: Dict[str, Any] = Field(default_factory=dict, description="Raw offending row")


class DuplicateNotice(BaseModel):
    model_config = ConfigDict(frozen=True)

    row: int = Field(..., ge=1)
    episode: Optional[str] = None
    reason: str


class DuplicateSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    count: int = 0
    details: List[DuplicateNotice] = Field(default_factory=list)


class StructureWarning(BaseModel):
    """Soft header problem; never blocks processing."""

    model_config = ConfigDict(frozen=True)

    type: Literal["missing_columns", "unknown_column"]
    message: str
    column: Optional[str] = None
    missing: Optional[List[str]] = None


class StructureWarnings(BaseModel):
    model_config = ConfigDict(frozen=True)

    warning_count: int = 0
    details: List[StructureWarning] = Field(default_factory=list)


class RowWarning(BaseModel):
    """Non-blocking classification notice for a created episode."""

    model_config = ConfigDict(frozen=True)

    row: int = Field(..., ge=1)
    episode: Optional[str] = None
    message: str


class ClassificationWarnings(BaseModel):
    model_config = ConfigDict(frozen=True)

    count: int = 0
    details: List[RowWarning] = Field(default_factory=list)


class BatchReport(BaseModel):
    """Outcome of one ingestion run."""

    model_config = ConfigDict(frozen=True)

    total_rows: int = 0
    valid_rows: int = Field(0, description="Episodes persisted by this run")
    invalid_rows: int = Field(0, description="Rows rejected or failed at persistence")
    errors: List[ErrorRecord] = Field(default_factory=list)
    duplicates: DuplicateSummary = Field(default_factory=DuplicateSummary)
    structure_warnings: StructureWarnings = Field(default_factory=StructureWarnings)
    classification_warnings: ClassificationWarnings = Field(default_factory=ClassificationWarnings)
    processed_at: Optional[str] = None


FINANCE_STATUSES = ("Aprobado", "Pendiente", "Rechazado")


class EpisodeOut(BaseModel):
    """
    Episode as served to external consumers.

    Aliases are the field names used by existing clients and by update requests.
    Monetary and count fields are plain numbers; ``at`` is always "S" or "N".
    """

    model_config = ConfigDict(populate_by_name=True)

    # read-only
    episode_id: str = Field(..., alias="episodio")
    rut: str = Field("", alias="rut")
    patient_name: str = Field("", alias="nombre")
    facility: str = Field("", alias="centro")
    agreement: Optional[str] = Field(None, alias="convenio")
    admission_date: Optional[date] = Field(None, alias="fechaIngreso")
    discharge_date: Optional[date] = Field(None, alias="fechaAlta")
    discharge_service: str = Field("", alias="servicioAlta")
    grd_code: str = Field("", alias="grdCodigo")
    grd_weight: Optional[float] = Field(None, alias="pesoGrd")
    length_of_stay: Optional[int] = Field(None, alias="diasEstada")
    stay_tag: Optional[str] = Field(None, alias="inlierOutlier")

    # finance
    finance_status: Optional[str] = Field(None, alias="estadoRN")
    technology_flag: Literal["S", "N"] = Field("N", alias="at")
    technology_detail: Optional[str] = Field(None, alias="atDetalle")
    technology_amount: Optional[float] = Field(None, alias="montoAT")
    newborn_amount: Optional[float] = Field(None, alias="montoRN")
    rescue_delay_days: Optional[int] = Field(None, alias="diasDemoraRescate")
    delay_payment: Optional[float] = Field(None, alias="pagoDemora")
    outlier_payment: Optional[float] = Field(None, alias="pagoOutlierSup")
    base_tariff: Optional[float] = Field(None, alias="precioBaseTramo")
    final_amount: float = Field(0.0, alias="montoFinal")
    documentation: Optional[str] = Field(None, alias="documentacion")

    # management
    validated: Optional[bool] = Field(None, alias="validado")
    review_comment: Optional[str] = Field(None, alias="comentariosGestion")
    reviewed_at: Optional[datetime] = Field(None, alias="fechaRevision")
    reviewed_by: Optional[str] = Field(None, alias="revisadoPor")

    @field_validator("finance_status", "technology_detail", "documentation", "review_comment", "reviewed_by")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        """Never serialize empty strings; absent is null."""
        if v is None or not str(v).strip():
            return None
        return v

    @field_validator("finance_status")
    @classmethod
    def known_status(cls, v: Optional[str]) -> Optional[str]:
        return v if v in FINANCE_STATUSES else None
