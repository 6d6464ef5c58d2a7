from __future__ import annotations

from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _CamelModel(BaseModel):
    # Accept both the camelCase wire names and the python field names.
    model_config = ConfigDict(populate_by_name=True)


class ReferenceImage(_CamelModel):
    url: str
    is_active: bool = Field(default=True, alias="isActive")


class SubjectContext(_CamelModel):
    type: str = "product"
    name: Optional[str] = None
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    preserve_likeness: bool = Field(default=False, alias="preserveLikeness")
    promotion: Optional[str] = None
    benefits: Optional[List[str]] = None
    target_audience: Optional[str] = Field(default=None, alias="targetAudience")
    price: Optional[str] = None
    is_free: bool = Field(default=False, alias="isFree")
    terms_and_conditions: Optional[str] = Field(default=None, alias="termsAndConditions")


class StylePreset(_CamelModel):
    id: Optional[str] = None
    name: Optional[str] = None
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    reference_images: List[Union[str, ReferenceImage]] = Field(default_factory=list, alias="referenceImages")
    avoid: List[str] = Field(default_factory=list)
    logo_material: Optional[str] = Field(default=None, alias="logoMaterial")
    logo_placement: Optional[str] = Field(default=None, alias="logoPlacement")

    def active_reference_urls(self) -> List[str]:
        urls: List[str] = []
        for ref in self.reference_images:
            if isinstance(ref, str):
                urls.append(ref)
            elif ref.is_active:
                urls.append(ref.url)
        return urls


class GenerateImageRequest(_CamelModel):
    business_id: str = Field(alias="businessId", min_length=1)
    prompt: str = Field(min_length=1)
    aspect_ratio: str = Field(default="1:1", alias="aspectRatio", pattern=r"^\d+:\d+$")
    style_id: Optional[str] = Field(default=None, alias="styleId")
    subject_id: Optional[str] = Field(default=None, alias="subjectId")
    model_tier: str = Field(default="pro", alias="modelTier", pattern="^(flash|pro|ultra)$")
    strategy: Optional[Any] = None
    subject_context: Optional[SubjectContext] = Field(default=None, alias="subjectContext")
    style_preset: Optional[StylePreset] = Field(default=None, alias="stylePreset")

    @field_validator("business_id", "prompt")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


class GenerateImageResponse(_CamelModel):
    job_id: str = Field(alias="jobId")
    status: str


class AssetSummary(_CamelModel):
    id: str
    type: str
    content: str
    prompt: str
    created_at: str = Field(alias="createdAt")
    style_preset: Optional[str] = Field(default=None, alias="stylePreset")
    aspect_ratio: str = Field(alias="aspectRatio")


class JobStatusResponse(_CamelModel):
    id: str
    status: str
    error_message: Optional[str] = Field(default=None, alias="errorMessage")
    result_asset_id: Optional[str] = Field(default=None, alias="resultAssetId")
    asset: Optional[AssetSummary] = None
    created_at: str = Field(alias="createdAt")
    updated_at: str = Field(alias="updatedAt")


class PendingJob(_CamelModel):
    id: str
    business_id: str = Field(alias="businessId")
    status: str
    prompt: str
    aspect_ratio: str = Field(alias="aspectRatio")
    style_id: Optional[str] = Field(default=None, alias="styleId")
    subject_id: Optional[str] = Field(default=None, alias="subjectId")
    model_tier: str = Field(alias="modelTier")
    created_at: str = Field(alias="createdAt")


class PendingJobsResponse(BaseModel):
    jobs: List[PendingJob]
