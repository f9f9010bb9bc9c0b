"""
Offline analysis of student records.

A fixed set of threshold rules; the same input always gives the same
summary, recommendations and at-risk list.
"""
from collections import namedtuple, OrderedDict

from records import BEHAVIOR_NEEDS_GUIDANCE

AT_RISK_AVERAGE = 65
AT_RISK_ATTENDANCE = 80
LOW_ATTENDANCE_AVERAGE = 90
LOW_SUBJECT_AVERAGE = 70

MIN_RECOMMENDATIONS = 3
MAX_RECOMMENDATIONS = 5

SUBJECTS = OrderedDict([
    ('math', 'Mathematics'),
    ('science', 'Science'),
    ('english', 'English'),
    ('islamic_studies', 'Islamic Studies'),
])

NO_DATA_SUMMARY = 'No student data is available for analysis yet.'
NO_DATA_RECOMMENDATION = 'Load or import student grade data to run the analysis.'

ATTENDANCE_RECOMMENDATION = ('Run an attendance programme: follow up absences with parents '
                             'within the week and recognise classes with full attendance.')
MATH_RECOMMENDATION = 'Schedule remedial mathematics sessions for students scoring below the class average.'
ENGLISH_RECOMMENDATION = 'Add English conversation and reading practice sessions to raise English scores.'
COUNSELING_RECOMMENDATION = ('Arrange counseling and closer homeroom mentoring for the students '
                             'flagged as needing special attention.')
GENERIC_RECOMMENDATIONS = (
    'Hold regular parent-teacher meetings to review each student\'s progress.',
    'Set up peer tutoring groups pairing strong and struggling students.',
    'Review teaching materials each term against assessment results.',
)

AnalysisResult = namedtuple('AnalysisResult', ['summary', 'recommendations', 'at_risk_students'])


def _mean(values):
    values = list(values)
    if not values:
        return 0
    return sum(values) / len(values)


def is_at_risk(student):
    return (student.average < AT_RISK_AVERAGE
            or student.attendance < AT_RISK_ATTENDANCE
            or student.behavior == BEHAVIOR_NEEDS_GUIDANCE)


def subject_averages(students):
    return OrderedDict((subject, _mean(getattr(s, subject) for s in students)) for subject in SUBJECTS)


def summarize(students):
    """Aggregate figures for the dashboard"""
    students = list(students)
    class_distribution = OrderedDict()
    for student in sorted(students, key=lambda s: s.class_name):
        class_distribution[student.class_name] = class_distribution.get(student.class_name, 0) + 1

    return {
        'total_students': len(students),
        'average_score': round(_mean(s.average for s in students), 1),
        'average_attendance': round(_mean(s.attendance for s in students), 1),
        'subject_averages': OrderedDict((subject, round(value, 1))
                                        for subject, value in subject_averages(students).items()),
        'class_distribution': class_distribution,
        'at_risk_count': sum(1 for s in students if is_at_risk(s)),
    }


def _recommendations(averages, attendance_average, at_risk):
    recommendations = []
    if attendance_average < LOW_ATTENDANCE_AVERAGE:
        recommendations.append(ATTENDANCE_RECOMMENDATION)
    if averages['math'] < LOW_SUBJECT_AVERAGE:
        recommendations.append(MATH_RECOMMENDATION)
    if averages['english'] < LOW_SUBJECT_AVERAGE:
        recommendations.append(ENGLISH_RECOMMENDATION)
    if at_risk:
        recommendations.append(COUNSELING_RECOMMENDATION)

    for generic in GENERIC_RECOMMENDATIONS:
        if len(recommendations) >= MIN_RECOMMENDATIONS:
            break
        recommendations.append(generic)
    return recommendations[:MAX_RECOMMENDATIONS]


def analyze_students(students):
    """Summary, recommendations and at-risk names for a student collection"""
    students = list(students)
    if not students:
        return AnalysisResult(NO_DATA_SUMMARY, [NO_DATA_RECOMMENDATION], [])

    averages = subject_averages(students)
    attendance_average = _mean(s.attendance for s in students)
    overall_average = _mean(s.average for s in students)
    at_risk = [s.name for s in students if is_at_risk(s)]

    strongest = max(SUBJECTS, key=lambda subject: averages[subject])
    weakest = min(SUBJECTS, key=lambda subject: averages[subject])
    summary = (f"Across {len(students)} students the overall average score is {overall_average:.1f} "
               f"with average attendance of {attendance_average:.1f}%. "
               f"{SUBJECTS[strongest]} is the strongest subject ({averages[strongest]:.1f}) and "
               f"{SUBJECTS[weakest]} the weakest ({averages[weakest]:.1f}). ")
    if at_risk:
        summary += f"{len(at_risk)} student(s) need special attention."
    else:
        summary += "No students are currently flagged as at risk."

    return AnalysisResult(summary, _recommendations(averages, attendance_average, at_risk), at_risk)
