"""
Initialize the demo LMS database
Creates a SQLite database with the LMS (Moodle) tables used by the seed report
definitions and fills them with random test data
"""

import os
import random
import time
from pathlib import Path

from sqlalchemy import create_engine, text

# Configuration
USERS_COUNT = 60
COURSES_COUNT = 12
CATEGORIES = ['Science', 'Humanities', 'Engineering', 'Medicine']
ROLES = [
    (1, 'Manager', 'manager'),
    (3, 'Teacher', 'editingteacher'),
    (4, 'Non-editing teacher', 'teacher'),
    (5, 'Student', 'student'),
]
COMPONENTS = ['core', 'mod_quiz', 'mod_forum', 'mod_assign', 'mod_page']

FIRST_NAMES = ['Alice', 'Bob', 'Chen', 'Dana', 'Erik', 'Fatima', 'Gus', 'Hana', 'Ivan', 'Jun', 'Kofi', 'Lena']
LAST_NAMES = ['Smith', 'Wang', 'Garcia', 'Müller', 'Okafor', 'Tanaka', 'Rossi', 'Kim', 'Novak', 'Silva']

SCHEMA = [
    "CREATE TABLE {prefix}user (id INTEGER PRIMARY KEY, username TEXT, firstname TEXT, lastname TEXT, "
    "email TEXT, deleted INTEGER DEFAULT 0, confirmed INTEGER DEFAULT 1, lastaccess INTEGER DEFAULT 0, "
    "lastlogin INTEGER DEFAULT 0, timecreated INTEGER DEFAULT 0)",
    "CREATE TABLE {prefix}course_categories (id INTEGER PRIMARY KEY, name TEXT, depth INTEGER DEFAULT 1)",
    "CREATE TABLE {prefix}course (id INTEGER PRIMARY KEY, category INTEGER, fullname TEXT, shortname TEXT, "
    "visible INTEGER DEFAULT 1)",
    "CREATE TABLE {prefix}enrol (id INTEGER PRIMARY KEY, courseid INTEGER, enrol TEXT)",
    "CREATE TABLE {prefix}user_enrolments (id INTEGER PRIMARY KEY, enrolid INTEGER, userid INTEGER, "
    "timecreated INTEGER)",
    "CREATE TABLE {prefix}groups (id INTEGER PRIMARY KEY, courseid INTEGER, name TEXT)",
    "CREATE TABLE {prefix}groups_members (id INTEGER PRIMARY KEY, groupid INTEGER, userid INTEGER)",
    "CREATE TABLE {prefix}role (id INTEGER PRIMARY KEY, name TEXT, shortname TEXT, sortorder INTEGER)",
    "CREATE TABLE {prefix}role_assignments (id INTEGER PRIMARY KEY, roleid INTEGER, userid INTEGER, "
    "contextid INTEGER)",
    "CREATE TABLE {prefix}user_lastaccess (id INTEGER PRIMARY KEY, userid INTEGER, courseid INTEGER, "
    "timeaccess INTEGER)",
    "CREATE TABLE {prefix}logstore_standard_log (id INTEGER PRIMARY KEY, component TEXT, userid INTEGER, "
    "courseid INTEGER, timecreated INTEGER)",
]


def random_past(days=180, now=None):
    """Random Unix timestamp within the last `days` days"""
    now = now or int(time.time())
    return now - random.randint(0, days * 86400)


def create_schema(conn, prefix='mdl_'):
    """Create the LMS tables"""
    for statement in SCHEMA:
        conn.execute(text(statement.format(prefix=prefix)))


def populate(conn, prefix='mdl_', now=None):
    """Insert random test data"""
    now = now or int(time.time())

    # id 1/2 are guest and admin
    conn.execute(text(f"INSERT INTO {prefix}user (id, username, firstname, lastname, email, lastaccess, lastlogin, timecreated) "
                      f"VALUES (1, 'guest', 'Guest', 'User', '', 0, 0, :t), (2, 'admin', 'Admin', 'User', 'admin@example.com', :t, :t, :t)"),
                 {"t": now - 400 * 86400})
    for user_id in range(3, USERS_COUNT + 3):
        first = random.choice(FIRST_NAMES)
        last = random.choice(LAST_NAMES)
        never_logged_in = random.random() < 0.15
        last_access = 0 if never_logged_in else random_past(120, now)
        conn.execute(text(f"INSERT INTO {prefix}user (id, username, firstname, lastname, email, lastaccess, lastlogin, timecreated) "
                          f"VALUES (:id, :username, :first, :last, :email, :la, :ll, :tc)"), {
            "id": user_id,
            "username": f"user{user_id}",
            "first": first,
            "last": last,
            "email": f"user{user_id}@example.com",
            "la": last_access,
            "ll": last_access,
            "tc": random_past(365, now),
        })

    for category_id, name in enumerate(CATEGORIES, start=1):
        conn.execute(text(f"INSERT INTO {prefix}course_categories (id, name, depth) VALUES (:id, :name, 1)"),
                     {"id": category_id, "name": name})

    # id 1 is the site front page course
    conn.execute(text(f"INSERT INTO {prefix}course (id, category, fullname, shortname, visible) VALUES (1, 0, 'Site', 'site', 1)"))
    enrolment_id = group_id = member_id = lastaccess_id = 1
    for course_id in range(2, COURSES_COUNT + 2):
        category_id = random.randint(1, len(CATEGORIES))
        conn.execute(text(f"INSERT INTO {prefix}course (id, category, fullname, shortname, visible) "
                          f"VALUES (:id, :category, :fullname, :shortname, :visible)"), {
            "id": course_id,
            "category": category_id,
            "fullname": f"{CATEGORIES[category_id - 1]} {course_id:03d}",
            "shortname": f"C{course_id:03d}",
            "visible": 0 if random.random() < 0.1 else 1,
        })
        conn.execute(text(f"INSERT INTO {prefix}enrol (id, courseid, enrol) VALUES (:id, :courseid, 'manual')"),
                     {"id": course_id, "courseid": course_id})

        students = random.sample(range(3, USERS_COUNT + 3), random.randint(5, 25))
        for user_id in students:
            conn.execute(text(f"INSERT INTO {prefix}user_enrolments (id, enrolid, userid, timecreated) "
                              f"VALUES (:id, :enrolid, :userid, :tc)"),
                         {"id": enrolment_id, "enrolid": course_id, "userid": user_id, "tc": random_past(200, now)})
            enrolment_id += 1
            conn.execute(text(f"INSERT INTO {prefix}user_lastaccess (id, userid, courseid, timeaccess) "
                              f"VALUES (:id, :userid, :courseid, :ta)"),
                         {"id": lastaccess_id, "userid": user_id, "courseid": course_id, "ta": random_past(60, now)})
            lastaccess_id += 1

        for group_index in range(random.randint(1, 3)):
            conn.execute(text(f"INSERT INTO {prefix}groups (id, courseid, name) VALUES (:id, :courseid, :name)"),
                         {"id": group_id, "courseid": course_id, "name": f"Group {chr(65 + group_index)}"})
            for user_id in random.sample(students, min(len(students), random.randint(1, 8))):
                conn.execute(text(f"INSERT INTO {prefix}groups_members (id, groupid, userid) VALUES (:id, :groupid, :userid)"),
                             {"id": member_id, "groupid": group_id, "userid": user_id})
                member_id += 1
            group_id += 1

    for sortorder, (role_id, name, shortname) in enumerate(ROLES, start=1):
        conn.execute(text(f"INSERT INTO {prefix}role (id, name, shortname, sortorder) VALUES (:id, :name, :shortname, :sortorder)"),
                     {"id": role_id, "name": name, "shortname": shortname, "sortorder": sortorder})
    for assignment_id, user_id in enumerate(range(2, USERS_COUNT + 3), start=1):
        role_id = 1 if user_id == 2 else random.choice([3, 4, 5, 5, 5, 5])
        conn.execute(text(f"INSERT INTO {prefix}role_assignments (id, roleid, userid, contextid) VALUES (:id, :roleid, :userid, 1)"),
                     {"id": assignment_id, "roleid": role_id, "userid": user_id})

    for log_id in range(1, 501):
        conn.execute(text(f"INSERT INTO {prefix}logstore_standard_log (id, component, userid, courseid, timecreated) "
                          f"VALUES (:id, :component, :userid, :courseid, :tc)"), {
            "id": log_id,
            "component": random.choice(COMPONENTS),
            "userid": random.randint(2, USERS_COUNT + 2),
            "courseid": random.randint(2, COURSES_COUNT + 1),
            "tc": random_past(30, now),
        })


def init_lms_database(db_path='data/lms.db', prefix='mdl_', seed=None):
    """
    Initialize the demo LMS database

    Args:
        db_path: Path to the SQLite database file
        prefix: LMS table prefix
        seed: Random seed for reproducible data
    """
    if seed is not None:
        random.seed(seed)

    # Remove existing database if it exists
    if os.path.exists(db_path):
        print(f"Removing existing database: {db_path}")
        os.remove(db_path)

    print(f"Creating new database: {db_path}")
    engine = create_engine(f"sqlite:///{db_path}")
    try:
        with engine.begin() as conn:
            create_schema(conn, prefix)
            print("Schema created successfully.")
            populate(conn, prefix)
            print("Test data inserted successfully.")

        print("\nSample record counts:")
        with engine.connect() as conn:
            for table in ['user', 'course', 'user_enrolments', 'groups_members', 'logstore_standard_log']:
                count = conn.execute(text(f"SELECT COUNT(*) FROM {prefix}{table}")).scalar()
                print(f"  {prefix}{table}: {count} records")
    finally:
        engine.dispose()

    print(f"\nDatabase initialization completed successfully!")
    print(f"Database file: {os.path.abspath(db_path)}")


if __name__ == '__main__':
    script_dir = Path(__file__).parent
    init_lms_database(str(script_dir / 'lms.db'), os.getenv('LMS_TABLE_PREFIX', 'mdl_'))
