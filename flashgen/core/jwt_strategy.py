import json
import time
from pathlib import Path
from typing import Any, Dict, Optional

import jwt
from jwcrypto import jwk
from fastapi_users.authentication.strategy.jwt import JWTStrategy
from fastapi_users import exceptions, models

from flashgen.core.config import settings


class RS256JWTStrategyWithKid(JWTStrategy[models.UP, models.ID]):
    """
    Custom JWT strategy that extends FastAPI Users JWTStrategy to add RS256 with kid header
    """

    def __init__(
        self,
        lifetime_seconds: int,
        key_id: str = "v1",
        key_path: Optional[str] = None,
    ):
        self.key_id = key_id
        self.key_path = Path(key_path or settings.jwt.private_key_path)

        self._setup_keys()

        super().__init__(
            secret=self.private_pem,
            lifetime_seconds=lifetime_seconds,
            token_audience=[settings.jwt.application_id],
            algorithm="RS256",
            public_key=self.public_pem,
        )

        self._setup_jwk()

    def _setup_keys(self):
        """Load the RSA key pair, generating and persisting one on first use"""
        if self.key_path.exists():
            self.rsa_key = jwk.JWK.from_pem(self.key_path.read_bytes())
        else:
            self.rsa_key = jwk.JWK.generate(kty="RSA", size=2048)
            self.key_path.parent.mkdir(parents=True, exist_ok=True)
            self.key_path.write_bytes(
                self.rsa_key.export_to_pem(private_key=True, password=None)
            )

        self.private_pem = self.rsa_key.export_to_pem(private_key=True, password=None)
        self.public_pem = self.rsa_key.export_to_pem(private_key=False, password=None)

    def _setup_jwk(self):
        self.public_jwk = json.loads(self.rsa_key.export_public())
        self.public_jwk["kid"] = self.key_id

    async def write_token(self, user: models.UP) -> str:
        """Generate JWT token with kid header"""
        now = int(time.time())
        data: Dict[str, Any] = {
            "sub": f"user:{user.id}",
            "user_id": str(user.id),
            "aud": self.token_audience,
            "iss": settings.jwt.issuer,
            "iat": now,
        }
        if self.lifetime_seconds:
            data["exp"] = now + self.lifetime_seconds

        if hasattr(user, "email"):
            data["email"] = str(user.email)

        return jwt.encode(
            data,
            self.encode_key,
            algorithm=self.algorithm,
            headers={"kid": self.key_id},
        )

    async def read_token(
        self, token: Optional[str], user_manager
    ) -> Optional[models.UP]:
        if token is None:
            return None

        try:
            payload = jwt.decode(
                token,
                self.decode_key,
                algorithms=[self.algorithm],
                audience=self.token_audience,
                issuer=settings.jwt.issuer,
            )
        except jwt.PyJWTError:
            return None

        user_id = payload.get("user_id")
        if user_id is None:
            return None

        try:
            parsed_user_id = user_manager.parse_id(user_id)
            return await user_manager.get(parsed_user_id)
        except (exceptions.UserNotExists, exceptions.InvalidID):
            return None

    def get_jwks(self) -> Dict[str, Any]:
        """Get JWKS for public key distribution"""
        return {"keys": [self.public_jwk]}
