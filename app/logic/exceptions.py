from typing import Optional

class BaseCustomError(Exception):
    """Base exception class for custom errors"""
    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[dict] = None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_detail(self) -> dict:
        return {
            "success": False,
            "error": self.error_code,
            "message": self.message,
            "details": self.details or None
        }

class PersistenceError(BaseCustomError):
    """Raised when the store or ledger is unavailable or a write fails"""
    def __init__(self, message: str):
        super().__init__(message, "PERSISTENCE_ERROR")

class NotFoundError(BaseCustomError):
    """Raised when a required row is absent"""
    def __init__(self, message: str, error_code: str = "NOT_FOUND"):
        super().__init__(message, error_code)

class CompanyNotFoundError(NotFoundError):
    def __init__(self, message: str):
        super().__init__(message, "COMPANY_NOT_FOUND")

class UserNotFoundError(NotFoundError):
    def __init__(self, message: str):
        super().__init__(message, "USER_NOT_FOUND")

class ExpenseNotFoundError(NotFoundError):
    def __init__(self, message: str):
        super().__init__(message, "EXPENSE_NOT_FOUND")

class ApprovalFlowStepNotFoundError(NotFoundError):
    def __init__(self, message: str):
        super().__init__(message, "APPROVAL_FLOW_STEP_NOT_FOUND")

class AlreadyExistsError(BaseCustomError):
    """Raised when trying to create a row that already exists"""
    def __init__(self, message: str):
        super().__init__(message, "ALREADY_EXISTS")

class AlreadyDecidedError(BaseCustomError):
    """Raised when an action targets an expense that is already approved or rejected"""
    def __init__(self, status: str):
        super().__init__(f"Expense is already {status}", "ALREADY_DECIDED", {"status": status})
        self.status = status

class InvalidStepError(BaseCustomError):
    """Raised when the expense step cursor does not match any configured step"""
    def __init__(self, step_order: int):
        super().__init__(f"Invalid approval step: {step_order}", "INVALID_STEP", {"step_order": step_order})
        self.step_order = step_order

class ForbiddenStepError(BaseCustomError):
    """Raised when the actor may not act on the current step"""
    def __init__(self, message: str, required_role: Optional[str] = None):
        super().__init__(message, "FORBIDDEN_STEP", {"required_role": required_role} if required_role else None)
        self.required_role = required_role

class ValidationError(BaseCustomError):
    """Raised when validation fails"""
    def __init__(self, message: str):
        super().__init__(message, "VALIDATION_ERROR")

class AuthenticationError(BaseCustomError):
    """Raised when authentication fails"""
    def __init__(self, message: str):
        super().__init__(message, "AUTHENTICATION_ERROR")

class AuthorizationError(BaseCustomError):
    """Raised when authorization fails"""
    def __init__(self, message: str):
        super().__init__(message, "AUTHORIZATION_ERROR")
