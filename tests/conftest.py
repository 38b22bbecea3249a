import pytest


class FakeDocument(dict):
    def __init__(self, record, fail_on_save=False):
        super().__init__(record)
        self.fail_on_save = fail_on_save
        self.saved = False

    def set(self, data):
        self.update(data or {})
        return self

    async def save(self):
        if self.fail_on_save:
            raise RuntimeError("constraint violated")
        self.saved = True
        return self


class FakeModel:
    def __init__(self, documents=None):
        self.documents = {doc["id"]: doc for doc in documents or []}
        self.queries = []

    def find_by_id(self, id):
        self.queries.append(("find_by_id", id))
        return self.documents.get(id)

    async def find_one(self, filter):
        self.queries.append(("find_one", filter))
        for doc in self.documents.values():
            if all(doc.get(field) == cond["$eq"] for field, cond in filter.items()):
                return doc
        return None


@pytest.fixture()
def memory():
    return FakeDocument({
        "id": "mem-1",
        "user_id": "user-1",
        "title": "Beach day",
        "status": "draft",
        "photo_url": "https://cdn.example.com/beach.jpg",
        "download_url": None,
    })


@pytest.fixture()
def memory_model(memory):
    return FakeModel([memory])


@pytest.fixture()
def make_document():
    return FakeDocument
