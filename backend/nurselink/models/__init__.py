from nurselink.models.mission import Mission
from nurselink.models.nurse import NurseProfile, EstablishmentExclusion
from nurselink.models.application import MissionApplication, AUTO_MATCHED_SOURCE
from nurselink.models.notification import Notification

__all__ = [
    "Mission",
    "NurseProfile",
    "EstablishmentExclusion",
    "MissionApplication",
    "AUTO_MATCHED_SOURCE",
    "Notification",
]
