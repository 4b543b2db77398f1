"""Pydantic schemas for the PropertyFlow API."""

from propertyflow.schemas.base import *
from propertyflow.schemas.auth import *
from propertyflow.schemas.property import *
from propertyflow.schemas.lease import *
from propertyflow.schemas.verification import *
from propertyflow.schemas.application import *
from propertyflow.schemas.payment import *
from propertyflow.schemas.contractor import *
from propertyflow.schemas.contractor_ops import *
from propertyflow.schemas.subscription import *
