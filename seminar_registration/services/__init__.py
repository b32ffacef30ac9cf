from .exceptions import RegistrationServiceError
