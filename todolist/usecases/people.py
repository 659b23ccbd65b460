# usecases/people.py — Profile (Person) reads and updates for the signed-in user
from todolist.entities import Person
from todolist.errors import ConflictError, DuplicateEntryError, NotFoundError, RecordNotFoundError
from todolist.repositories.base import PersonRepository, UserRepository
from todolist.schemas import PersonUpdate
from todolist.usecases.auth import conflict_from
from todolist.valueobjects import Date, Email


class GetProfile:
    def __init__(self, user_repo: UserRepository, person_repo: PersonRepository):
        self.user_repo = user_repo
        self.person_repo = person_repo

    async def execute(self, user_id: int) -> Person:
        try:
            user = await self.user_repo.find_by_id(user_id)
            return await self.person_repo.find_by_id(user.person_id)
        except RecordNotFoundError as e:
            code = "USER_NOT_FOUND" if e.entity == "user" else "PERSON_NOT_FOUND"
            raise NotFoundError(code) from None


class UpdateProfile(GetProfile):
    async def execute(self, user_id: int, request: PersonUpdate) -> Person:
        person = await super().execute(user_id)
        changed = request.model_fields_set

        if "name" in changed and request.name is not None:
            person.update_name(request.name)
        if "phone" in changed and request.phone is not None:
            person.update_phone(request.phone)
        if "birth_date" in changed:
            person.update_birth_date(Date.parse(request.birth_date) if request.birth_date else None)
        if "email" in changed and request.email is not None:
            email = Email(request.email)
            if email != person.email:
                if await self.person_repo.exists_by_email(email.value):
                    raise ConflictError("EMAIL_TAKEN", details={"field": "email"})
                person.update_email(email)

        try:
            await self.person_repo.save(person)
        except DuplicateEntryError as e:
            raise conflict_from(e) from None
        return person
