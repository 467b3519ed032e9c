"""
Request and response schemas for the kid video API.

Each table in database.py has a public model here; field names are the
camelCase keys the client receives.
"""
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

AVATARS = ("child", "girl", "boy", "baby", "cool", "robot")
MAX_KIDS = 6

VIDEO_PLATFORMS = ("youtube", "tiktok")
MAX_VIDEO_VIEWS = 4
VIDEO_PRIORITY_MIN = 1
VIDEO_PRIORITY_MAX = 9
VIDEO_PRIORITY_DEFAULT = 5

FEEDBACK_TYPES = ("text", "voice", "video", "screenshot")

# Folders named with this prefix are managed by the global playlist sync
SHADOW_FOLDER_PREFIX = "__global_"


class Kid(BaseModel):
	id: str
	name: str
	avatar: Literal[AVATARS]


class KidCreate(BaseModel):
	name: str = Field(..., min_length=1, description="Display name, unique per account")
	avatar: str = Field("child", description="One of the avatar icon names")


class KidUpdate(BaseModel):
	name: Optional[str] = None
	avatar: Optional[str] = None


class Folder(BaseModel):
	id: str
	name: str


class FolderCreate(BaseModel):
	name: str = Field(..., min_length=1)


class GlobalFolder(Folder):
	videoCount: int = 0


class VoiceRecording(BaseModel):
	recordedAt: str
	duration: float = Field(..., description="Seconds")
	audioData: Optional[str] = Field(None, description="Base64 audio for playback")


class VideoProgress(BaseModel):
	watched: bool = False
	watchedAt: Optional[str] = None
	voiceRecordings: List[VoiceRecording] = Field(default_factory=list)
	parentReviewed: Optional[bool] = None
	lastPosition: Optional[float] = None
	videoDuration: Optional[float] = None
	dailyWatchTime: Optional[Dict[str, float]] = None


class Video(BaseModel):
	id: str
	url: str
	platformVideoId: str
	platform: Literal[VIDEO_PLATFORMS] = "youtube"
	folderId: Optional[str] = None
	priority: int = VIDEO_PRIORITY_DEFAULT
	assigned: Dict[str, bool] = Field(default_factory=dict)
	progress: Dict[str, VideoProgress] = Field(default_factory=dict)
	totalViews: int = 0


class VideoCreate(BaseModel):
	url: str = Field(..., min_length=1, description="YouTube or TikTok link")
	kidIds: Optional[List[str]] = Field(None, description="Empty or missing assigns every kid")
	folderId: Optional[str] = None
	priority: Optional[int] = None


class VideoUpdate(BaseModel):
	priority: Optional[int] = None
	folderId: Optional[str] = None


class WatchedRequest(BaseModel):
	voiceRecording: VoiceRecording


class PositionRequest(BaseModel):
	position: float
	duration: Optional[float] = None


class GlobalSubscription(BaseModel):
	id: str
	userId: str
	masterFolderId: str
	kidIds: List[str] = Field(default_factory=list)
	createdAt: Optional[str] = None


class SubscribeRequest(BaseModel):
	masterFolderId: str = Field(..., min_length=1)
	kidIds: List[str] = Field(default_factory=list)


class MasterFolderRequest(BaseModel):
	masterFolderId: str = Field(..., min_length=1)


class Feedback(BaseModel):
	id: str
	userId: str
	type: Literal[FEEDBACK_TYPES]
	content: Optional[str] = None
	createdAt: Optional[str] = None


class FeedbackCreate(BaseModel):
	type: str
	content: str


class ResolveUrlRequest(BaseModel):
	url: str


class BadgeCount(BaseModel):
	count: int
