"""
Auth Service - handles user authentication.
"""
from .base import HTTPException, logging, get_db_session, UserORM
from auth import verify_password, create_access_token

logger = logging.getLogger("gym_app")


class AuthService:
    """Service for authenticating users and issuing access tokens."""

    def authenticate_user(self, username: str, password: str):
        """Authenticate a user by username and password."""
        db = get_db_session()
        try:
            user = db.query(UserORM).filter(UserORM.username == username).first()
            if not user or not user.is_active:
                return False
            if not verify_password(password, user.hashed_password):
                return False
            return user
        finally:
            db.close()

    def login(self, username: str, password: str) -> dict:
        user = self.authenticate_user(username, password)
        if not user:
            logger.info(f"Failed login for {username}")
            raise HTTPException(status_code=401, detail="Invalid username or password")

        token = create_access_token(data={"sub": user.id, "role": user.role})
        return {
            "access_token": token,
            "token_type": "bearer",
            "role": user.role,
            "user_id": user.id,
            "gym_id": user.gym_id,
        }


# Singleton instance
auth_service = AuthService()


def get_auth_service() -> AuthService:
    """Dependency injection helper."""
    return auth_service
