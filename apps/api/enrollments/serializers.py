"""
Enrollment API Serializers for Classlane Platform
"""

from rest_framework import serializers

from apps.accounts.models import Student
from apps.courses.models import Course, CourseClass
from apps.enrollments.models import Enrollment


class ClassEnrollmentInputSerializer(serializers.Serializer):
    """Input for enrolling a student in one or more classes"""

    class_ids = serializers.ListField(child=serializers.IntegerField(min_value=1), allow_empty=True)
    student_id = serializers.IntegerField(min_value=1)
    credit = serializers.IntegerField(min_value=0, default=0, help_text="Account credit to use, in cents")
    promotion_id = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    payment_method_nonce = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=255)
    whole_series = serializers.BooleanField(default=False)


class TrialEnrollmentInputSerializer(serializers.Serializer):
    """Input for the free introductory class"""

    class_id = serializers.IntegerField(min_value=1)
    student_id = serializers.IntegerField(min_value=1)


class StudentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Student
        fields = ["id", "name"]


class CourseSerializer(serializers.ModelSerializer):
    class Meta:
        model = Course
        fields = ["id", "name", "subject", "level", "is_trial"]


class CourseClassSerializer(serializers.ModelSerializer):
    course = CourseSerializer(read_only=True)

    class Meta:
        model = CourseClass
        fields = ["id", "starts_at", "ends_at", "course"]


class EnrollmentSerializer(serializers.ModelSerializer):
    """Enrollment with its student, class and what priced it"""

    student = StudentSerializer(read_only=True)
    course_class = CourseClassSerializer(read_only=True)
    promotion_code = serializers.CharField(source="promotion.code", read_only=True, default=None)
    credit_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = Enrollment
        fields = [
            "id",
            "student",
            "course_class",
            "source",
            "campaign",
            "promotion_id",
            "promotion_code",
            "credit_id",
            "created_at",
        ]
        read_only_fields = fields
