"""
数据传输对象 (Data Transfer Objects)
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any


class DataMetadata(BaseModel):
    """数据元信息"""
    columns: List[str]
    column_types: Dict[str, str]
    row_count: int


class ParameterOption(BaseModel):
    """下拉选项"""
    value: Any
    label: str


class ReportParameter(BaseModel):
    """报表参数定义"""
    model_config = ConfigDict(extra="allow")

    name: str
    label: Optional[str] = None
    type: str = "text"  # select / date / number / text / quiz_select / *_select
    description: Optional[str] = None
    required: bool = False
    default: Optional[Any] = None
    options: Optional[List[ParameterOption]] = None
    min: Optional[float] = None
    max: Optional[float] = None


class ReportDefinition(BaseModel):
    """报表定义（名称即标识）"""
    model_config = ConfigDict(extra="ignore")

    name: str
    category: str = "General Reports"
    description: Optional[str] = None
    sqlquery: str = ""
    parameters: List[ReportParameter] = Field(default_factory=list)
    charttype: Optional[str] = None
    isactive: bool = True
    is_free_tier: bool = False
    min_moodle_version: Optional[str] = None
    max_moodle_version: Optional[str] = None

    def summary(self) -> Dict[str, Any]:
        """返回前端使用的报表摘要（不包含SQL）"""
        return {
            "id": self.name,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "charttype": self.charttype,
            "is_free_tier": self.is_free_tier,
            "parameters": [p.model_dump(exclude_none=True) for p in self.parameters],
        }
