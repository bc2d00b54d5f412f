"""
Request and filter schemas for the discovery & matching API

Field names are camelCase on the wire to stay compatible with the mobile
client. Store documents live in these collections:
- users -> "users" (owned by the user directory)
- UserPreference -> "userpreferences"
- Swipe -> "swipes"
- Match -> "matches"
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

ProfileType = Literal["personal", "business", "collaboration"]


class SwipeRequest(BaseModel):
    """
    Body of POST /matches/like, /dislike and /superlike
    """
    targetUserId: Optional[str] = Field(None, description="User being swiped on")


class PreferencesUpdate(BaseModel):
    """
    Saved discovery filters
    Collection name: "userpreferences" (one per user)
    """
    profileType: Optional[ProfileType] = None
    showMeGenders: Optional[List[str]] = Field(None, description="Gender ids to show")
    minAge: Optional[int] = Field(None, ge=18, le=120)
    maxAge: Optional[int] = Field(None, ge=18, le=120)
    maxDistance: Optional[float] = Field(None, gt=0, description="Miles")
    interests: Optional[List[str]] = Field(None, description="Interest ids")

    @model_validator(mode="after")
    def check_age_band(self):
        if self.minAge is not None and self.maxAge is not None and self.minAge > self.maxAge:
            raise ValueError("minAge cannot be greater than maxAge")
        return self


class BoostPurchaseRequest(BaseModel):
    package: Optional[str] = Field(None, description="boost_3, boost_5 or boost_10")
    paymentMethod: Optional[str] = None
    transactionId: Optional[str] = Field(None, description="Client transaction id, used for de-duplication")
    duration: Optional[int] = Field(None, gt=0, description="Window length in minutes")


class BoostActivateRequest(BaseModel):
    duration: Optional[int] = Field(None, gt=0, description="Window length in minutes")


class FeedFilters(BaseModel):
    """
    Optional listing filters, kept as raw query strings so that malformed
    values can be ignored instead of rejected.
    """
    page: Optional[str] = None
    limit: Optional[str] = None
    profileType: Optional[str] = None
    minAge: Optional[str] = None
    maxAge: Optional[str] = None
    maxDistance: Optional[str] = None
    genderIds: Optional[str] = None
    interests: Optional[str] = None
    loveLanguageIds: Optional[str] = None
    zodiacSigns: Optional[str] = None
    workIds: Optional[str] = None
    orientationIds: Optional[str] = None
    communicationStyleIds: Optional[str] = None
    premiumOnly: Optional[str] = None
