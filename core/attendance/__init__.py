from .orchestrator import VerificationOrchestrator, VerificationPolicy, VerificationStage
from .outcome import (
    Accepted,
    AttendanceClaim,
    CommitFailed,
    Failed,
    Outcome,
    OutcomeStatus,
    Rejected,
)
from .registration import ReferenceRegistrar
from .stores import (
    AttendanceRecord,
    AttendanceStore,
    BlobProfileStore,
    InMemoryAttendanceStore,
    InMemoryProfileStore,
    ProfileStore,
)

__all__ = [
    'VerificationOrchestrator',
    'VerificationPolicy',
    'VerificationStage',
    'Accepted',
    'AttendanceClaim',
    'CommitFailed',
    'Failed',
    'Outcome',
    'OutcomeStatus',
    'Rejected',
    'ReferenceRegistrar',
    'AttendanceRecord',
    'AttendanceStore',
    'BlobProfileStore',
    'InMemoryAttendanceStore',
    'InMemoryProfileStore',
    'ProfileStore',
]
