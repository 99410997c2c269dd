from datetime import datetime
from enum import Enum
from typing import Annotated, Dict, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from config import settings


class Category(str, Enum):
    QNA = "QNA"
    RECOMMEND = "RECOMMEND"
    SECONDHAND = "SECONDHAND"
    FREE = "FREE"


CATEGORY_LABELS: Dict[Category, str] = {
    Category.QNA: "Q&A",
    Category.RECOMMEND: "추천",
    Category.SECONDHAND: "중고거래",
    Category.FREE: "나눔",
}

_unlabelled = set(Category) - set(CATEGORY_LABELS)
if _unlabelled:
    raise RuntimeError(f"Categories without a display label: {sorted(c.value for c in _unlabelled)}")


def category_label(category: Category) -> str:
    return CATEGORY_LABELS[category]


class SortOrder(str, Enum):
    POPULAR = "popular"
    LATEST = "latest"


class CamelModel(BaseModel):
    """Snake_case in Python and Firestore, camelCase on the wire"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class RequestModel(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="forbid",
    )


# ─── inbound payloads ──────────────────────────────────────

def _check_image_urls(images: List[str]) -> List[str]:
    if len(images) > settings.POST_IMAGES_MAX:
        raise ValueError(f"At most {settings.POST_IMAGES_MAX} images can be attached")
    for url in images:
        if len(url) > settings.IMAGE_URL_MAX or not url.startswith(("http://", "https://")):
            raise ValueError("Image URL is invalid")
    return images


ImageList = Annotated[List[str], AfterValidator(_check_image_urls)]


class CreatePostRequest(RequestModel):
    category: Category
    body: str = Field(min_length=1, max_length=settings.POST_BODY_MAX)
    title: Optional[str] = Field(default=None, max_length=settings.POST_TITLE_MAX)
    city_id: Optional[str] = Field(default=None, min_length=1)
    apartment_id: Optional[str] = Field(default=None, min_length=1)
    images: ImageList = []


class UpdatePostRequest(RequestModel):
    category: Optional[Category] = None
    body: Optional[str] = Field(default=None, min_length=1, max_length=settings.POST_BODY_MAX)
    title: Optional[str] = Field(default=None, max_length=settings.POST_TITLE_MAX)
    city_id: Optional[str] = Field(default=None, min_length=1)
    apartment_id: Optional[str] = Field(default=None, min_length=1)
    images: Optional[ImageList] = None

    @model_validator(mode="after")
    def _not_empty(self):
        if not self.model_fields_set:
            raise ValueError("Nothing to update")
        return self


class CreateCommentRequest(RequestModel):
    body: str = Field(min_length=1, max_length=settings.COMMENT_BODY_MAX)
    parent_id: Optional[str] = Field(default=None, min_length=1)


class DeleteCommentRequest(RequestModel):
    post_id: str = Field(min_length=1)
    comment_id: str = Field(min_length=1)


# ─── query / outbound ──────────────────────────────────────

class PostFilter(BaseModel):
    city_id: Optional[str] = None
    apartment_id: Optional[str] = None
    category: Optional[Category] = None


class Post(CamelModel):
    id: str
    author_uid: str
    city_id: Optional[str] = None
    apartment_id: Optional[str] = None
    category: Category
    title: Optional[str] = None
    body: str
    images: List[str] = []
    likes_count: int = 0
    comments_count: int = 0
    created_at: datetime
    updated_at: Optional[datetime] = None
    is_deleted: bool = False
    is_liked: bool = False


class Comment(CamelModel):
    id: str
    post_id: str
    author_uid: str
    parent_id: Optional[str] = None
    body: str
    created_at: datetime
    replies: List["Comment"] = []


class LikeState(CamelModel):
    liked: bool
    count: int


class CategoryCounts(CamelModel):
    total: int
    by_category: Dict[Category, int]
