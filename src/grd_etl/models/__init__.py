from grd_etl.models.tables import Base, Patient, GrdNorm, Episode, AgreementPrice
from grd_etl.models.norm import NormEntry

__all__ = ["Base", "Patient", "GrdNorm", "Episode", "AgreementPrice", "NormEntry"]
