# Request, patch and filter models
from .prescription import (
    PrescriptionCreate, PrescriptionUpdate, PrescriptionFilter, ApproveRequest, CancelRequest
)
from .allergy import AllergyCreate, AllergyUpdate, AllergyFilter
from .administration import AdministrationCreate, AdministrationUpdate, AdministrationFilter
from .alert import InteractionCheckRequest, AlertFilter, OverrideRequest, ResolveRequest
