from sqlalchemy import Column, Integer, String, DateTime, Text, JSON, ForeignKey
from careerhub.database import Base

# Label shown to the user -> attribute that must be filled in
PROFILE_FIELDS = {
    "Name": "student_name",
    "Contact Number": "student_contact_number",
    "Description": "student_description",
    "Profile Image": "student_profile_image_path",
    "Category": "student_category",
}


class Student(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    student_name = Column(String(255), nullable=True)
    student_contact_number = Column(String(50), nullable=True)
    student_description = Column(Text, nullable=True)
    student_profile_image_path = Column(String(500), nullable=True)
    student_category = Column(String(100), nullable=True)
    student_career_pathways = Column(JSON, nullable=True)  # list of pathway names
    student_documents = Column(JSON, nullable=True)

    # Set each time a profile-completion reminder goes out
    last_profile_reminder = Column(DateTime, nullable=True)

    def missing_fields(self) -> list:
        return [label for label, attr in PROFILE_FIELDS.items() if not getattr(self, attr)]

    def completion_percentage(self) -> int:
        total = len(PROFILE_FIELDS)
        completed = total - len(self.missing_fields())
        return round(completed / total * 100)

    def to_dict(self):
        return {
            "studentID": self.id,
            "userID": self.user_id,
            "studentName": self.student_name,
            "studentContactNumber": self.student_contact_number,
            "studentDescription": self.student_description,
            "studentProfileImagePath": self.student_profile_image_path,
            "studentCategory": self.student_category,
            "studentCareerPathways": self.student_career_pathways or [],
        }
