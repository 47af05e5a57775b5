# -*- coding: utf-8 -*-
"""
@FileName    : schemas.py
@Author      : jiaxin
@Date        : 2026/10/19
@Time        : 10:15
@Description :
"""
from pydantic import BaseModel
from typing import Dict, Optional


class HealthCheckResponse(BaseModel):
    status: str
    message: str
    version: Optional[str] = None


class MessageResponse(BaseModel):
    message: str


class RoutesResponse(BaseModel):
    routes: Dict[str, str]
