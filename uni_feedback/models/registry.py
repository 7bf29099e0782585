# Importing this module registers every table on Base.metadata.
from uni_feedback.models.faculty import Faculty  # noqa: F401
from uni_feedback.models.degree import Degree  # noqa: F401
from uni_feedback.models.course import Course  # noqa: F401
from uni_feedback.models.course_relationship import CourseRelationship  # noqa: F401
from uni_feedback.models.course_group import CourseGroup  # noqa: F401
from uni_feedback.models.feedback import Feedback  # noqa: F401
from uni_feedback.models.feedback_analysis import FeedbackAnalysis  # noqa: F401
from uni_feedback.models.feedback_flag import FeedbackFlag  # noqa: F401
from uni_feedback.models.feedback_draft import FeedbackDraft  # noqa: F401
from uni_feedback.models.helpful_vote import HelpfulVote  # noqa: F401
from uni_feedback.models.user import User  # noqa: F401
from uni_feedback.models.session import AuthSession  # noqa: F401
from uni_feedback.models.otp_token import OtpToken  # noqa: F401
from uni_feedback.models.magic_link import MagicLinkToken, MagicLinkRateLimit  # noqa: F401
from uni_feedback.models.password_reset_token import PasswordResetToken  # noqa: F401
from uni_feedback.models.user_creation_token import UserCreationToken  # noqa: F401
from uni_feedback.models.ai_categorization_cache import AiCategorizationCache  # noqa: F401
from uni_feedback.models.point_registry import PointRegistry  # noqa: F401
