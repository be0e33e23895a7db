from collections import namedtuple

Course = namedtuple('Course', ['id', 'name', 'price', 'schedule'])

COURSE_FEES = (
    Course(1, "Admission Fee", 1000, "One Time"),
    Course(2, "Grade 6 to 11", 1200, "Tue 3.30 p.m - 5.30 p.m"),
    Course(3, "Grade 6 to 11", 1200, "Wed 3 p.m - 5 p.m"),
    Course(4, "Grade 6 to 11 Special", 1000, "Monthly"),
    Course(5, "2026 AL Revision", 3500, "Fri 10.30 a.m - 5.30 p.m"),
    Course(6, "2027 AL Theory", 2500, "Mon 3 p.m - 5.30 p.m"),
    Course(7, "2027 AL Revision", 4000, "Mon 10 a.m - 5.30 p.m"),
    Course(8, "2028 AL Theory", 3000, "Thu 3 p.m - 5.30 p.m"),
    Course(9, "2028 AL Revision", 4500, "Thu 10 a.m - 5.30 p.m"),
    Course(10, "N5 Japanese", 5000, "Sun 2.30 p.m - 5.30 p.m"),
    Course(11, "N4 Japanese", 5000, "Mon 7 p.m - 10 p.m"),
    Course(12, "JFT (Weekdays)", 10000, "Tue, Wed, Thu 10 a.m - 2 p.m"),
    Course(13, "JFT (Weekends)", 10000, "Sat 10-5, Sun 10-2"),
)


def find_course(course_id):
    for course in COURSE_FEES:
        if course.id == course_id:
            return course
    return None


def search_courses(query):
    if not query:
        return list(COURSE_FEES)
    query = query.lower()
    return [c for c in COURSE_FEES if query in c.name.lower() or query in c.schedule.lower()]
