from pydantic import BaseModel, EmailStr, Field

class UserBase(BaseModel):
	email: EmailStr
	name: str = Field(..., min_length=1, max_length=100)

class UserCreate(UserBase):
	password: str = Field(..., min_length=8, max_length=128)

class UserRead(UserBase):
	id: str

	class Config:
		from_attributes = True
