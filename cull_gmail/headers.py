from caseconverter import snakecase


class Headers(object):
    """
    Handles a collection of message headers
    """

    def __init__(self, headers):
        """
        headers: list of {'name': ..., 'value': ...} header objects as
        returned in a message payload
        """
        self.data = {}
        for header in headers or []:
            k = snakecase(header['name'])
            v = header['value']
            self.data[k] = v

    @classmethod
    def from_message(cls, message):
        return cls(message.get('payload', {}).get('headers', []))

    def get_subject(self):
        return self.data.get('subject')

    def get_date(self):
        return self.data.get('date')
