"""
Pydantic Schemas - Request/Response Validation

All API request and response schemas in one file for simplicity.
"""

import re
from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from typing import Optional, List, Any, Dict, Annotated
from datetime import datetime
from enum import Enum

from app.core.auth import validate_password_strength
from app.utils.helpers import naive_utc

# Incoming datetimes are stored as naive UTC
UTCDateTime = Annotated[datetime, AfterValidator(naive_utc)]

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class PortalModel(BaseModel):
    # Enum fields hold plain strings so documents go straight to Mongo
    model_config = ConfigDict(use_enum_values=True, validate_default=True)


# ============================================================
# ENUMS
# ============================================================

class UserRole(str, Enum):
    student = "student"
    admin = "admin"


class FeeType(str, Enum):
    tuition = "tuition"
    hostel = "hostel"
    library = "library"
    examination = "examination"
    other = "other"


class FeeStatus(str, Enum):
    pending = "pending"
    partial = "partial"
    paid = "paid"
    overdue = "overdue"
    waived = "waived"


class PaymentMethod(str, Enum):
    card = "card"
    bank_transfer = "bank_transfer"
    upi = "upi"
    wallet = "wallet"
    cash = "cash"


class TransactionStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"
    refunded = "refunded"


class AdjustmentType(str, Enum):
    discount = "discount"
    waiver = "waiver"


class BorrowStatus(str, Enum):
    borrowed = "borrowed"
    returned = "returned"
    overdue = "overdue"


class ExamType(str, Enum):
    midterm = "midterm"
    final = "final"
    quiz = "quiz"
    practical = "practical"
    viva = "viva"
    project = "project"
    online = "online"


class ExamStatus(str, Enum):
    draft = "draft"
    scheduled = "scheduled"
    ongoing = "ongoing"
    completed = "completed"
    cancelled = "cancelled"
    postponed = "postponed"


class RoomType(str, Enum):
    single = "single"
    double = "double"
    triple = "triple"
    quad = "quad"


class MaintenanceStatus(str, Enum):
    good = "good"
    needs_repair = "needs_repair"
    under_maintenance = "under_maintenance"


class AllocationStatus(str, Enum):
    pending = "pending"
    allocated = "allocated"
    checked_in = "checked_in"
    checked_out = "checked_out"
    cancelled = "cancelled"


class ServiceRequestType(str, Enum):
    maintenance = "maintenance"
    cleaning = "cleaning"
    pest_control = "pest_control"
    electrical = "electrical"
    plumbing = "plumbing"
    furniture = "furniture"
    room_change = "room_change"
    other = "other"


class ServiceRequestStatus(str, Enum):
    submitted = "submitted"
    acknowledged = "acknowledged"
    in_progress = "in_progress"
    resolved = "resolved"
    cancelled = "cancelled"


class Priority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


class JobType(str, Enum):
    full_time = "full_time"
    part_time = "part_time"
    internship = "internship"
    contract = "contract"


class JobStatus(str, Enum):
    active = "active"
    closed = "closed"
    draft = "draft"


class ApplicationStatus(str, Enum):
    applied = "applied"
    under_review = "under_review"
    shortlisted = "shortlisted"
    interview_scheduled = "interview_scheduled"
    selected = "selected"
    rejected = "rejected"
    withdrawn = "withdrawn"


class InterviewMode(str, Enum):
    online = "online"
    offline = "offline"
    phone = "phone"


class NotificationType(str, Enum):
    info = "info"
    success = "success"
    warning = "warning"
    error = "error"
    reminder = "reminder"
    achievement = "achievement"


class NotificationCategory(str, Enum):
    system = "system"
    fee = "fee"
    exam = "exam"
    library = "library"
    hostel = "hostel"
    placement = "placement"
    academic = "academic"
    certificate = "certificate"
    gamification = "gamification"


class RecipientType(str, Enum):
    all = "all"
    department = "department"
    semester = "semester"
    specific = "specific"


class StatsPeriod(str, Enum):
    week = "week"
    month = "month"
    year = "year"


class LeaderboardPeriod(str, Enum):
    all = "all"
    week = "week"
    month = "month"
    year = "year"


class BadgeCategory(str, Enum):
    academic = "academic"
    social = "social"
    achievement = "achievement"
    participation = "participation"
    milestone = "milestone"


class BadgeRarity(str, Enum):
    common = "common"
    uncommon = "uncommon"
    rare = "rare"
    epic = "epic"
    legendary = "legendary"


class PointType(str, Enum):
    badge_earned = "badge_earned"
    exam_score = "exam_score"
    library_activity = "library_activity"
    placement_activity = "placement_activity"
    fee_payment = "fee_payment"
    event_participation = "event_participation"
    manual_award = "manual_award"


class CourseType(str, Enum):
    core = "core"
    elective = "elective"
    lab = "lab"
    project = "project"


class CourseStatus(str, Enum):
    active = "active"
    inactive = "inactive"
    upcoming = "upcoming"
    completed = "completed"


class Weekday(str, Enum):
    monday = "Monday"
    tuesday = "Tuesday"
    wednesday = "Wednesday"
    thursday = "Thursday"
    friday = "Friday"
    saturday = "Saturday"
    sunday = "Sunday"


class CertificateType(str, Enum):
    degree = "degree"
    diploma = "diploma"
    course_completion = "course_completion"
    participation = "participation"
    achievement = "achievement"
    transcript = "transcript"


# ============================================================
# COMMON RESPONSE SCHEMAS
# ============================================================

class APIResponse(PortalModel):
    """Envelope every endpoint answers with."""
    success: bool = True
    message: Optional[str] = None
    data: Any = None


# ============================================================
# AUTH / USER SCHEMAS
# ============================================================

class ProfileData(PortalModel):
    phone: Optional[str] = Field(None, pattern=r"^\+?[0-9\- ]{7,15}$")
    address: Optional[str] = Field(None, max_length=300)
    date_of_birth: Optional[UTCDateTime] = None
    department: Optional[str] = Field(None, max_length=100)
    semester: Optional[int] = Field(None, ge=1, le=8)
    admission_year: Optional[int] = Field(None, ge=1950, le=2100)
    cgpa: Optional[float] = Field(None, ge=0, le=10)
    sgpa: Optional[float] = Field(None, ge=0, le=10)


class RegisterRequest(PortalModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str
    role: UserRole = UserRole.student
    student_id: Optional[str] = Field(None, min_length=1, max_length=30)
    profile: Optional[ProfileData] = None

    @field_validator("password")
    @classmethod
    def strong_password(cls, v):
        return validate_password_strength(v)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v):
        return v.strip()

    @model_validator(mode="after")
    def student_needs_id(self):
        if self.role == UserRole.student and not self.student_id:
            raise ValueError("Student ID is required for students")
        return self


class UserCreate(RegisterRequest):
    is_active: bool = True


class AdminCreate(PortalModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str
    profile: Optional[ProfileData] = None

    @field_validator("password")
    @classmethod
    def strong_password(cls, v):
        return validate_password_strength(v)


class LoginRequest(PortalModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshRequest(PortalModel):
    refresh_token: str


class UserUpdate(PortalModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = None
    student_id: Optional[str] = Field(None, min_length=1, max_length=30)
    is_active: Optional[bool] = None
    profile: Optional[ProfileData] = None


class OwnProfileData(PortalModel):
    phone: Optional[str] = Field(None, pattern=r"^\+?[0-9\- ]{7,15}$")
    address: Optional[str] = Field(None, max_length=300)
    date_of_birth: Optional[UTCDateTime] = None
    department: Optional[str] = Field(None, max_length=100)


class ProfileUpdate(PortalModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    profile: Optional[OwnProfileData] = None


class ChangePasswordRequest(PortalModel):
    current_password: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, v):
        return validate_password_strength(v)


class UserImportRow(PortalModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    student_id: str = Field(..., min_length=1, max_length=30)
    profile: Optional[ProfileData] = None


class BulkImportRequest(PortalModel):
    # Rows are validated one by one so a bad row doesn't sink the batch
    users: List[Dict[str, Any]] = Field(..., min_length=1)


# ============================================================
# FEE SCHEMAS
# ============================================================

class FeeData(PortalModel):
    fee_type: FeeType
    amount: float = Field(..., gt=0)
    description: Optional[str] = Field(None, max_length=500)
    due_date: UTCDateTime
    academic_year: Optional[str] = None
    semester: Optional[int] = Field(None, ge=1, le=8)


class FeeCreate(FeeData):
    user_id: str


class FeeUpdate(PortalModel):
    fee_type: Optional[FeeType] = None
    amount: Optional[float] = Field(None, gt=0)
    description: Optional[str] = Field(None, max_length=500)
    due_date: Optional[UTCDateTime] = None
    status: Optional[FeeStatus] = None
    academic_year: Optional[str] = None
    semester: Optional[int] = Field(None, ge=1, le=8)


class BulkFeeCreate(PortalModel):
    student_ids: List[str] = Field(..., min_length=1)
    fee_data: FeeData


class PaymentRequest(PortalModel):
    payment_method: PaymentMethod = PaymentMethod.card
    amount: Optional[float] = Field(None, gt=0)
    transaction_id: Optional[str] = Field(None, max_length=64)


class DiscountWaiverRequest(PortalModel):
    type: AdjustmentType
    amount: Optional[float] = Field(None, gt=0)
    percentage: Optional[float] = Field(None, gt=0, le=100)
    reason: str = Field(..., min_length=3, max_length=500)

    @model_validator(mode="after")
    def needs_value(self):
        if self.type == AdjustmentType.waiver and self.amount is None:
            raise ValueError("Waiver amount is required")
        if self.type == AdjustmentType.discount and self.amount is None and self.percentage is None:
            raise ValueError("Discount needs an amount or a percentage")
        return self


class RefundRequest(PortalModel):
    refund_amount: Optional[float] = Field(None, gt=0)
    reason: str = Field(..., min_length=3, max_length=500)


# ============================================================
# LIBRARY SCHEMAS
# ============================================================

def _clean_isbn(v: str) -> str:
    v = v.replace("-", "").replace(" ", "").upper()
    if not re.match(r"^(\d{9}[\dX]|\d{13})$", v):
        raise ValueError("ISBN must be 10 or 13 digits")
    return v


class BookCreate(PortalModel):
    title: str = Field(..., min_length=1, max_length=200)
    author: str = Field(..., min_length=1, max_length=100)
    isbn: str
    category: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=1000)
    publisher: Optional[str] = None
    published_year: Optional[int] = Field(None, ge=1000, le=2100)
    language: str = "English"
    tags: List[str] = []
    location: Optional[str] = None
    total_copies: int = Field(1, ge=1)
    available_copies: Optional[int] = Field(None, ge=0)

    @field_validator("isbn")
    @classmethod
    def valid_isbn(cls, v):
        return _clean_isbn(v)

    @model_validator(mode="after")
    def copies_in_range(self):
        if self.available_copies is not None and self.available_copies > self.total_copies:
            raise ValueError("Available copies cannot exceed total copies")
        return self


class BookUpdate(PortalModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    author: Optional[str] = Field(None, min_length=1, max_length=100)
    isbn: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = Field(None, max_length=1000)
    publisher: Optional[str] = None
    published_year: Optional[int] = Field(None, ge=1000, le=2100)
    language: Optional[str] = None
    tags: Optional[List[str]] = None
    location: Optional[str] = None
    total_copies: Optional[int] = Field(None, ge=1)

    @field_validator("isbn")
    @classmethod
    def valid_isbn(cls, v):
        return _clean_isbn(v) if v is not None else v


class BorrowRequest(PortalModel):
    book_id: str


class BorrowActionRequest(PortalModel):
    borrow_id: str


# ============================================================
# EXAM SCHEMAS
# ============================================================

class ExamCreate(PortalModel):
    title: str = Field(..., min_length=2, max_length=200)
    subject: str = Field(..., min_length=1, max_length=100)
    course_code: str = Field(..., min_length=1, max_length=20)
    department: str
    semester: int = Field(..., ge=1, le=8)
    exam_type: ExamType
    exam_date: UTCDateTime
    start_time: str = Field(..., pattern=TIME_PATTERN)
    end_time: str = Field(..., pattern=TIME_PATTERN)
    duration: int = Field(..., ge=30, le=480)
    room: Optional[str] = None
    max_marks: float = Field(100, gt=0)
    # Filled from the academic config when omitted
    passing_marks: Optional[float] = Field(None, ge=0)
    credits: Optional[int] = Field(None, ge=1, le=10)
    status: ExamStatus = ExamStatus.scheduled
    instructions: Optional[str] = None

    @model_validator(mode="after")
    def sane_marks_and_times(self):
        if self.passing_marks is not None and self.passing_marks > self.max_marks:
            raise ValueError("Passing marks cannot exceed maximum marks")
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self


class ExamUpdate(PortalModel):
    title: Optional[str] = Field(None, min_length=2, max_length=200)
    subject: Optional[str] = None
    course_code: Optional[str] = None
    department: Optional[str] = None
    semester: Optional[int] = Field(None, ge=1, le=8)
    exam_type: Optional[ExamType] = None
    exam_date: Optional[UTCDateTime] = None
    start_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    end_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    duration: Optional[int] = Field(None, ge=30, le=480)
    room: Optional[str] = None
    max_marks: Optional[float] = Field(None, gt=0)
    passing_marks: Optional[float] = Field(None, ge=0)
    credits: Optional[int] = Field(None, ge=1, le=10)
    status: Optional[ExamStatus] = None
    instructions: Optional[str] = None


class ResultEntry(PortalModel):
    student_id: str
    marks_obtained: float = Field(..., ge=0)
    remarks: Optional[str] = Field(None, max_length=500)


class ResultsSubmit(PortalModel):
    results: List[ResultEntry] = Field(..., min_length=1)


# ============================================================
# HOSTEL SCHEMAS
# ============================================================

class RoomCreate(PortalModel):
    room_number: str = Field(..., min_length=1, max_length=20)
    block: str = Field(..., min_length=1, max_length=20)
    floor: int = Field(..., ge=0, le=50)
    type: RoomType
    capacity: int = Field(..., ge=1, le=4)
    amenities: List[str] = []
    rent: float = Field(0, ge=0)
    deposit: float = Field(0, ge=0)
    is_active: bool = True
    maintenance_status: MaintenanceStatus = MaintenanceStatus.good


class RoomUpdate(PortalModel):
    block: Optional[str] = None
    floor: Optional[int] = Field(None, ge=0, le=50)
    type: Optional[RoomType] = None
    capacity: Optional[int] = Field(None, ge=1, le=4)
    amenities: Optional[List[str]] = None
    rent: Optional[float] = Field(None, ge=0)
    deposit: Optional[float] = Field(None, ge=0)
    is_active: Optional[bool] = None
    maintenance_status: Optional[MaintenanceStatus] = None


class AllocationRequest(PortalModel):
    room_id: Optional[str] = None
    preferences: Optional[Dict[str, Any]] = None
    notes: Optional[str] = Field(None, max_length=500)


class AllocationUpdate(PortalModel):
    status: Optional[AllocationStatus] = None
    room_id: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=500)


class ReassignRequest(PortalModel):
    allocation_id: str
    new_room_id: str
    reason: Optional[str] = Field(None, max_length=500)


class ServiceRequestCreate(PortalModel):
    type: ServiceRequestType
    title: str = Field(..., min_length=3, max_length=100)
    description: str = Field(..., min_length=5, max_length=1000)
    priority: Priority = Priority.medium
    room_id: Optional[str] = None


class ServiceRequestUpdate(PortalModel):
    status: Optional[ServiceRequestStatus] = None
    priority: Optional[Priority] = None
    admin_notes: Optional[str] = Field(None, max_length=1000)


class RoomChangeRequest(PortalModel):
    reason: str = Field(..., min_length=5, max_length=1000)
    preferred_room_id: Optional[str] = None


# ============================================================
# PLACEMENT SCHEMAS
# ============================================================

class SalaryRange(PortalModel):
    min: Optional[float] = Field(None, ge=0)
    max: Optional[float] = Field(None, ge=0)
    currency: str = "INR"

    @model_validator(mode="after")
    def ordered(self):
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("Minimum salary cannot exceed maximum salary")
        return self


class Eligibility(PortalModel):
    cgpa_min: Optional[float] = Field(None, ge=0, le=10)
    departments: List[str] = []


class JobCreate(PortalModel):
    title: str = Field(..., min_length=2, max_length=200)
    company: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=10)
    location: str
    job_type: JobType = JobType.full_time
    salary: Optional[SalaryRange] = None
    application_deadline: UTCDateTime
    eligibility: Eligibility = Eligibility()
    requirements: List[str] = []
    total_positions: int = Field(1, ge=1)
    status: JobStatus = JobStatus.active


class JobUpdate(PortalModel):
    title: Optional[str] = Field(None, min_length=2, max_length=200)
    company: Optional[str] = None
    description: Optional[str] = Field(None, min_length=10)
    location: Optional[str] = None
    job_type: Optional[JobType] = None
    salary: Optional[SalaryRange] = None
    application_deadline: Optional[UTCDateTime] = None
    eligibility: Optional[Eligibility] = None
    requirements: Optional[List[str]] = None
    total_positions: Optional[int] = Field(None, ge=1)
    status: Optional[JobStatus] = None


class BulkJobStatus(PortalModel):
    job_ids: List[str] = Field(..., min_length=1)
    status: JobStatus


class ApplyRequest(PortalModel):
    cover_letter: Optional[str] = Field(None, max_length=5000)
    resume_url: Optional[str] = None


class ApplicationStatusUpdate(PortalModel):
    status: ApplicationStatus
    feedback: Optional[str] = Field(None, max_length=1000)


class InterviewSchedule(PortalModel):
    date: UTCDateTime
    time: str = Field(..., pattern=TIME_PATTERN)
    mode: InterviewMode = InterviewMode.online
    location: Optional[str] = None
    link: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=1000)


# ============================================================
# NOTIFICATION SCHEMAS
# ============================================================

class NotificationCreate(PortalModel):
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=1000)
    type: NotificationType = NotificationType.info
    category: NotificationCategory = NotificationCategory.system
    priority: Priority = Priority.medium
    recipient_type: RecipientType = RecipientType.all
    recipients: List[str] = []
    department: Optional[str] = None
    semester: Optional[int] = Field(None, ge=1, le=8)
    action_url: Optional[str] = None
    action_text: Optional[str] = Field(None, max_length=50)
    data: Optional[Dict[str, Any]] = None
    expires_at: Optional[UTCDateTime] = None


class BulkNotificationRequest(PortalModel):
    # Each row is a NotificationCreate payload, validated individually
    notifications: List[Dict[str, Any]] = Field(..., min_length=1)


class NotificationUpdate(PortalModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    message: Optional[str] = Field(None, min_length=1, max_length=1000)
    type: Optional[NotificationType] = None
    category: Optional[NotificationCategory] = None
    priority: Optional[Priority] = None
    action_url: Optional[str] = None
    action_text: Optional[str] = Field(None, max_length=50)
    expires_at: Optional[UTCDateTime] = None


# ============================================================
# GAMIFICATION SCHEMAS
# ============================================================

class BadgeCreate(PortalModel):
    name: str = Field(..., min_length=2, max_length=100)
    description: str = Field(..., min_length=2, max_length=500)
    icon: Optional[str] = None
    criteria: Dict[str, Any] = {}
    points: int = Field(0, ge=0)
    category: BadgeCategory = BadgeCategory.achievement
    rarity: BadgeRarity = BadgeRarity.common
    is_active: bool = True


class AwardBadgeRequest(PortalModel):
    user_id: str
    badge_id: str
    reason: Optional[str] = Field(None, max_length=500)


class AddPointsRequest(PortalModel):
    user_id: str
    points: int = Field(..., ge=1, le=10000)
    type: PointType = PointType.manual_award
    multiplier: float = Field(1, ge=1, le=10)
    description: str = Field(..., min_length=2, max_length=300)


# ============================================================
# COURSE SCHEMAS
# ============================================================

class Instructor(PortalModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr


class ClassSlot(PortalModel):
    day: Weekday
    time: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d-([01]\d|2[0-3]):[0-5]\d$")
    room: str = Field(..., min_length=1, max_length=50)


class CourseCreate(PortalModel):
    code: str = Field(..., pattern=r"^[A-Za-z]{2,5}\d{3,4}$")
    name: str = Field(..., min_length=2, max_length=200)
    department: str = Field(..., min_length=1, max_length=100)
    semester: int = Field(..., ge=1, le=8)
    credits: int = Field(..., ge=1, le=6)
    type: CourseType = CourseType.core
    instructor: Instructor
    max_capacity: int = Field(..., ge=1, le=500)
    schedule: List[ClassSlot] = Field(..., min_length=1)
    description: Optional[str] = Field(None, max_length=2000)
    prerequisites: List[str] = []
    status: CourseStatus = CourseStatus.active

    @field_validator("code")
    @classmethod
    def upper_code(cls, v):
        return v.upper()

    @field_validator("prerequisites")
    @classmethod
    def upper_prerequisites(cls, v):
        return sorted({code.strip().upper() for code in v if code.strip()})


class CourseUpdate(PortalModel):
    name: Optional[str] = Field(None, min_length=2, max_length=200)
    department: Optional[str] = Field(None, min_length=1, max_length=100)
    semester: Optional[int] = Field(None, ge=1, le=8)
    credits: Optional[int] = Field(None, ge=1, le=6)
    type: Optional[CourseType] = None
    instructor: Optional[Instructor] = None
    max_capacity: Optional[int] = Field(None, ge=1, le=500)
    schedule: Optional[List[ClassSlot]] = Field(None, min_length=1)
    description: Optional[str] = Field(None, max_length=2000)
    prerequisites: Optional[List[str]] = None
    status: Optional[CourseStatus] = None


# ============================================================
# CERTIFICATE SCHEMAS
# ============================================================

class CertificateDetails(PortalModel):
    course: Optional[str] = Field(None, max_length=200)
    grade: Optional[str] = Field(None, max_length=10)
    duration: Optional[str] = Field(None, max_length=50)
    department: Optional[str] = Field(None, max_length=100)
    cgpa: Optional[float] = Field(None, ge=0, le=10)
    percentage: Optional[float] = Field(None, ge=0, le=100)


class CertificateCreate(PortalModel):
    user_id: str
    type: CertificateType
    title: str = Field(..., min_length=2, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    valid_until: Optional[UTCDateTime] = None
    metadata: CertificateDetails = CertificateDetails()


class CertificateUpdate(PortalModel):
    title: Optional[str] = Field(None, min_length=2, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    valid_until: Optional[UTCDateTime] = None
    metadata: Optional[CertificateDetails] = None


class RevokeRequest(PortalModel):
    reason: str = Field(..., min_length=3, max_length=500)


# ============================================================
# CHATBOT / SYSTEM SCHEMAS
# ============================================================

class ChatMessage(PortalModel):
    message: str = Field(..., min_length=1, max_length=1000)
    context: Optional[Dict[str, Any]] = None


class ConfigSection(PortalModel):
    # Unknown keys are rejected so a typo cannot silently do nothing
    model_config = ConfigDict(use_enum_values=True, extra="forbid")


class GeneralSettings(ConfigSection):
    institution_name: Optional[str] = Field(None, min_length=2, max_length=200)
    academic_year: Optional[str] = Field(None, pattern=r"^\d{4}-\d{4}$")


class NotificationSettings(ConfigSection):
    fee_reminder_days: Optional[List[Annotated[int, Field(ge=0, le=60)]]] = Field(None, min_length=1)
    overdue_reminder_interval_days: Optional[int] = Field(None, ge=1, le=60)


class SecuritySettings(ConfigSection):
    max_login_attempts: Optional[int] = Field(None, ge=1, le=20)
    lock_minutes: Optional[int] = Field(None, ge=1, le=1440)


class AcademicSettings(ConfigSection):
    default_credits: Optional[int] = Field(None, ge=1, le=10)
    passing_percentage: Optional[float] = Field(None, ge=0, le=100)


class FeeSettings(ConfigSection):
    currency: Optional[str] = Field(None, pattern=r"^[A-Z]{3}$")
    upcoming_window_days: Optional[int] = Field(None, ge=1, le=90)


class LibrarySettings(ConfigSection):
    max_books_per_student: Optional[int] = Field(None, ge=1, le=50)
    borrow_duration_days: Optional[int] = Field(None, ge=1, le=180)
    renewal_limit: Optional[int] = Field(None, ge=0, le=10)
    fine_per_day: Optional[int] = Field(None, ge=0, le=1000)


class SystemConfigUpdate(ConfigSection):
    general: Optional[GeneralSettings] = None
    notifications: Optional[NotificationSettings] = None
    security: Optional[SecuritySettings] = None
    academic: Optional[AcademicSettings] = None
    fees: Optional[FeeSettings] = None
    library: Optional[LibrarySettings] = None
