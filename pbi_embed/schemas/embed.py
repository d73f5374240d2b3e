from __future__ import annotations
from enum import Enum
from typing import Literal, Optional, Union
from pydantic import BaseModel


class ReportName(str, Enum):
    ExecutiveOverview = "ExecutiveOverview"
    SalesPerformance = "SalesPerformance"
    GrowthForecast = "GrowthForecast"
    DetailedAnalysis = "DetailedAnalysis"


class CallerIdentity(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None


class DemoEmbedConfig(BaseModel):
    reportName: str
    demoMode: Literal[True] = True
    embedConfigured: Literal[False] = False
    message: str


class LiveEmbedConfig(BaseModel):
    reportName: str
    embedUrl: str
    reportId: str
    # the embed token, never the provider's app access token
    accessToken: str
    userRole: Optional[str] = None


EmbedConfiguration = Union[DemoEmbedConfig, LiveEmbedConfig]
