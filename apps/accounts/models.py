"""
Accounts models.

Only what the ticketing backend needs from identity:
 - UUID-keyed users that log in by email
 - `user_type` separating ticket holders from event companies
 - `wallet_address`, the on-chain destination for minted tickets
"""
from typing import Optional
import uuid

from django.db import models
from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.utils import timezone


# ---------------------------------------------------------------------
# BaseEntity
# ---------------------------------------------------------------------
class BaseEntity(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)
    is_deleted = models.BooleanField(default=False, db_index=True)

    class Meta:
        abstract = True
        ordering = ["-created_at"]

    def soft_delete(self):
        if self.is_deleted:
            return
        self.is_deleted = True
        self.save(update_fields=["is_deleted", "updated_at"])


# ---------------------------------------------------------------------
# User manager
# ---------------------------------------------------------------------
class UserManager(BaseUserManager):
    use_in_migrations = True

    @staticmethod
    def normalize_wallet(wallet_address: Optional[str]) -> Optional[str]:
        if not wallet_address:
            return None
        return wallet_address.strip()

    def _create_user(self, email: str, password: Optional[str], **extra):
        if not email:
            raise ValueError("Users must have an email address")
        email = self.normalize_email(email)
        extra["wallet_address"] = self.normalize_wallet(extra.get("wallet_address"))

        user = self.model(email=email, **extra)
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()
        user.save(using=self._db)
        return user

    def create_user(self, email: str, password: Optional[str] = None, **extra):
        extra.setdefault("is_staff", False)
        extra.setdefault("is_superuser", False)
        return self._create_user(email, password, **extra)

    def create_superuser(self, email: str, password: str, **extra):
        if not password:
            raise ValueError("Superuser must have a password")
        extra.setdefault("is_staff", True)
        extra.setdefault("is_superuser", True)
        if extra.get("is_staff") is not True:
            raise ValueError("Superuser must have is_staff=True.")
        if extra.get("is_superuser") is not True:
            raise ValueError("Superuser must have is_superuser=True.")
        return self._create_user(email, password, **extra)

    def get_by_natural_key(self, key: str):
        return self.get(email__iexact=key)


# ---------------------------------------------------------------------
# User model
# ---------------------------------------------------------------------
class User(AbstractBaseUser, PermissionsMixin, BaseEntity):
    class UserType(models.TextChoices):
        USER = "user", "User"
        COMPANY = "company", "Company"

    email = models.EmailField(unique=True)
    name = models.CharField(max_length=200, blank=True)
    user_type = models.CharField(max_length=20, choices=UserType.choices, default=UserType.USER, db_index=True)
    # 0x-prefixed, 20-byte hex address; tickets cannot be minted until this is set
    wallet_address = models.CharField(max_length=42, blank=True, null=True, db_index=True)

    is_staff = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)

    objects = UserManager()

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    class Meta(BaseEntity.Meta):
        verbose_name = "User"
        verbose_name_plural = "Users"

    def __str__(self) -> str:
        return self.email or f"User {self.pk}"

    @property
    def is_company(self) -> bool:
        return self.user_type == self.UserType.COMPANY

    @property
    def has_wallet(self) -> bool:
        return bool(self.wallet_address)
