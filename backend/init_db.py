"""
Скрипт инициализации базы данных
Создаёт таблицы и добавляет демо-барбершоп с мастерами и очередью
"""
import sys
sys.path.insert(0, '.')

from datetime import datetime

from barberqueue.database import init_db, SessionLocal
from barberqueue.models import (
    Barbershop,
    Service,
    Employee,
    EmployeeService,
    EmployeeSchedule,
    QueueSettings,
)
from barberqueue.models.employee_schedule import DEFAULT_SCHEDULE

# Создаём все таблицы
print("Создание таблиц...")
init_db()
print("Таблицы созданы!")

INITIAL_SERVICES = [
    {"name": "Мужская стрижка", "duration_minutes": 40, "price": 1500},
    {"name": "Стрижка машинкой", "duration_minutes": 20, "price": 800},
    {"name": "Оформление бороды", "duration_minutes": 30, "price": 1000},
    {"name": "Стрижка + борода", "duration_minutes": 60, "price": 2200},
]

INITIAL_EMPLOYEES = ["Артём", "Денис"]

db = SessionLocal()
try:
    if db.query(Barbershop).count() > 0:
        print("Демо-данные уже есть, пропускаем")
        sys.exit(0)

    barbershop = Barbershop(name="Демо барбершоп")
    db.add(barbershop)
    db.flush()

    services = []
    for data in INITIAL_SERVICES:
        service = Service(barbershop_id=barbershop.id, is_active=True, **data)
        db.add(service)
        services.append(service)
    db.flush()

    for name in INITIAL_EMPLOYEES:
        employee = Employee(barbershop_id=barbershop.id, name=name, status="active")
        db.add(employee)
        db.flush()

        for service in services:
            db.add(EmployeeService(employee_id=employee.id, service_id=service.id))

        for day in DEFAULT_SCHEDULE:
            db.add(EmployeeSchedule(
                employee_id=employee.id,
                day_of_week=day["day_of_week"],
                start_time=datetime.strptime(day["start_time"], "%H:%M").time(),
                end_time=datetime.strptime(day["end_time"], "%H:%M").time(),
                is_active=day["is_active"]
            ))

    db.add(QueueSettings(barbershop_id=barbershop.id, enabled=True))
    db.commit()

    print(f"✅ Барбершоп создан: {barbershop.id}")
    print(f"   Услуг: {len(services)}, мастеров: {len(INITIAL_EMPLOYEES)}")
finally:
    db.close()
