from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class PrepareDeployRequest(BaseModel):
    project_dir: Optional[Path] = Field(default=None, description="Source project root")
    services_dir: Optional[Path] = Field(default=None, description="Services directory")
    project_id: Optional[str] = Field(default=None, description="Target Firebase project")
    public_api_only: bool = Field(default=False, description="Deploy only the public API service")
    services_file: Optional[Path] = Field(default=None, description="File listing services to include")
    copy_mode: str = Field(default='full', description="full or allowlist")
    export_strategy: str = Field(default='auto', description="auto, regex or introspect")
    memory: Optional[str] = Field(default=None, description="Functions memory, e.g. 512MB")
    timeout: Optional[str] = Field(default=None, description="Functions timeout, e.g. 300s")

    @field_validator('copy_mode')
    def known_copy_mode(cls, v):
        if v not in ('full', 'allowlist'):
            raise ValueError("copy_mode must be 'full' or 'allowlist'")
        return v

    @field_validator('export_strategy')
    def known_strategy(cls, v):
        if v not in ('auto', 'regex', 'introspect'):
            raise ValueError("export_strategy must be 'auto', 'regex' or 'introspect'")
        return v

    @field_validator('project_id', 'memory', 'timeout')
    def empty_string_to_none(cls, v):
        if v == '':
            return None
        return v


class DeployFromRequest(BaseModel):
    deploy_dir: Path = Field(description="Prepared deployment directory")
    project_id: str = Field(min_length=1, description="Target Firebase project")
    force: bool = Field(default=False, description="Pass --force to firebase deploy")
    max_attempts: int = Field(default=1, ge=1, le=10, description="firebase deploy attempts")
    retry_delay: float = Field(default=10.0, ge=0, description="Seconds between attempts")


class FunctionRequest(BaseModel):
    function_name: str = Field(min_length=1, description="Deployed function name")
    project_id: str = Field(min_length=1, description="Target Firebase project")
    region: Optional[str] = Field(default=None, description="Functions region")

    @field_validator('function_name')
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("function name must not be empty")
        return v
