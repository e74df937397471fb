from django.db import models


class Difficulty(models.TextChoices):
    EASY = "EASY", "Easy"
    MEDIUM = "MEDIUM", "Medium"
    HARD = "HARD", "Hard"


class QuestionType(models.TextChoices):
    MCQ    = "MCQ",    "Multiple choice"
    CODING = "CODING", "Coding"


class TestStatus(models.TextChoices):
    DRAFT     = "DRAFT",     "Draft"
    PUBLISHED = "PUBLISHED", "Published"
    ARCHIVED  = "ARCHIVED",  "Archived"


class AttemptStatus(models.TextChoices):
    IN_PROGRESS    = "IN_PROGRESS",    "In progress"
    SUBMITTED      = "SUBMITTED",      "Submitted"
    AUTO_SUBMITTED = "AUTO_SUBMITTED", "Auto-submitted"
    TERMINATED     = "TERMINATED",     "Terminated"
    GRADED         = "GRADED",         "Graded"

    @classmethod
    def terminal(cls):
        return [cls.SUBMITTED, cls.AUTO_SUBMITTED, cls.TERMINATED, cls.GRADED]

    @classmethod
    def with_results(cls):
        return [cls.SUBMITTED, cls.AUTO_SUBMITTED, cls.GRADED]


class ProctoringCode(models.TextChoices):
    TAB_SWITCH      = "TAB_SWITCH",      "Tab/Window switch"
    FULLSCREEN_EXIT = "FULLSCREEN_EXIT", "Fullscreen exit"
    COPY_PASTE      = "COPY_PASTE",      "Copy/Paste"
    PROCTOR_ALERT   = "PROCTOR_ALERT",   "Proctor alert"


class ExecutionStatus(models.TextChoices):
    SUCCESS       = "SUCCESS",       "Success"
    RUNTIME_ERROR = "RUNTIME_ERROR", "Runtime error"
    COMPILE_ERROR = "COMPILE_ERROR", "Compile error"
    SYSTEM_ERROR  = "SYSTEM_ERROR",  "System error"


class CollegeRole(models.TextChoices):
    OWNER     = "owner",     "College owner"
    ADMIN     = "admin",     "College admin"
    RECRUITER = "recruiter", "Recruiter"
    MEMBER    = "member",    "Student"


class Resource(models.TextChoices):
    TEST     = "test",     "Test"
    QUESTION = "question", "Question"
    DRIVE    = "drive",    "Drive"
    RESULTS  = "results",  "Results"
    SETTINGS = "settings", "Settings"
    MEMBERS  = "members",  "Members"


class Action(models.TextChoices):
    CREATE  = "create",  "Create"
    READ    = "read",    "Read"
    UPDATE  = "update",  "Update"
    DELETE  = "delete",  "Delete"
    PUBLISH = "publish", "Publish"
    EXPORT  = "export",  "Export"
    MANAGE_REGISTRATIONS = "manage_registrations", "Manage registrations"
    INVITE      = "invite",      "Invite"
    REMOVE      = "remove",      "Remove"
    UPDATE_ROLE = "update_role", "Update role"
