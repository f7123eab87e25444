from app.models import Prediction


class FakePredictionClient:
    """Replays a scripted list of predictions and records every call.

    The last scripted poll repeats forever, which lets a test model a job
    that never leaves ``processing``.
    """

    def __init__(self, created: Prediction | Exception, polls: list[Prediction | Exception] | None = None):
        self.created = created
        self.polls = list(polls or [])
        self.create_calls: list[tuple[str, object]] = []
        self.get_calls: list[str] = []
        self.cancel_calls: list[str] = []
        self.closed = False

    async def create_prediction(self, image, params):
        self.create_calls.append((image, params))
        if isinstance(self.created, Exception):
            raise self.created
        return self.created

    async def get_prediction(self, prediction_id):
        self.get_calls.append(prediction_id)
        nxt = self.polls.pop(0) if len(self.polls) > 1 else self.polls[0]
        if isinstance(nxt, Exception):
            raise nxt
        return nxt

    async def cancel_prediction(self, prediction_id):
        self.cancel_calls.append(prediction_id)

    async def aclose(self):
        self.closed = True


def prediction(status: str, **kwargs) -> Prediction:
    return Prediction(id=kwargs.pop("id", "p1"), status=status, **kwargs)
